"""Configuration defaults for the identity core."""

import os
from typing import Any, Mapping

from flask import Flask, current_app, has_app_context

SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite:///aardwolf.db')
"""DSN of the relational store holding users, emails and roles."""

SQLALCHEMY_TRACK_MODIFICATIONS = False

PASSWORD_HASH_COST = int(os.environ.get('PASSWORD_HASH_COST', '12'))
"""
bcrypt work factor.

This is fixed per deployment; changing it only affects hashes created
afterwards, existing hashes carry their own cost.
"""

PASSWORD_MIN_LENGTH = int(os.environ.get('PASSWORD_MIN_LENGTH', '8'))
"""Shortest plaintext password accepted by the default policy."""

EMAIL_TOKEN_BYTES = int(os.environ.get('EMAIL_TOKEN_BYTES', '32'))
"""Bytes of entropy in an email verification token."""

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')

AUDIT_LOG_ENABLED = os.environ.get('AUDIT_LOG_ENABLED', '1') \
    not in ('0', 'false', 'False', 'no')
"""Set to ``0`` to silence security audit events."""

_DEFAULTS = {
    'SQLALCHEMY_DATABASE_URI': SQLALCHEMY_DATABASE_URI,
    'SQLALCHEMY_TRACK_MODIFICATIONS': SQLALCHEMY_TRACK_MODIFICATIONS,
    'PASSWORD_HASH_COST': PASSWORD_HASH_COST,
    'PASSWORD_MIN_LENGTH': PASSWORD_MIN_LENGTH,
    'EMAIL_TOKEN_BYTES': EMAIL_TOKEN_BYTES,
    'LOGLEVEL': LOGLEVEL,
    'AUDIT_LOG_ENABLED': AUDIT_LOG_ENABLED,
}


def get_application_config() -> Mapping[str, Any]:
    """
    Get the configuration for the current context.

    Inside a Flask application context this is the application config,
    otherwise it is the process environment.
    """
    if has_app_context():
        return current_app.config
    return os.environ


def get(key: str) -> Any:
    """Look up ``key`` in the current config, falling back to the default."""
    return get_application_config().get(key, _DEFAULTS[key])


def get_int(key: str) -> int:
    """Look up an integer setting; environment values arrive as strings."""
    return int(get(key))


def get_bool(key: str) -> bool:
    value = get(key)
    if isinstance(value, str):
        return value not in ('', '0', 'false', 'False', 'no')
    return bool(value)


def set_defaults(app: Flask) -> None:
    """Populate missing keys on ``app.config``."""
    for key, value in _DEFAULTS.items():
        app.config.setdefault(key, value)
