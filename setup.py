"""Install aardwolf identity package."""

from setuptools import setup, find_packages

setup(
    name='aardwolf-identity',
    version='0.1.0',
    packages=[f'aardwolf.{package}' for package
              in find_packages('./aardwolf', exclude=['*test*'])],
    install_requires=[
        "bcrypt",
        "flask",
        "flask-sqlalchemy>=3.0",
        "python-json-logger>=3.1",
        "pytz",
        "sqlalchemy>=2.0",
    ],
    extras_require={
        'test': [
            "hypothesis",
            "mimesis",
            "pytest",
        ]
    },
    zip_safe=False
)
