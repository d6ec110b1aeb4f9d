"""
Identity, authentication and authorization core of the aardwolf service.

This package decides how an anonymous request becomes an authenticated user,
how that user proves ownership of an email address, and how a user with the
right role obtains the capability to perform a privileged action. The user
states and their transitions live in :mod:`.users`; the request layer will
usually start from the helpers in :mod:`.accounts`.
"""

from . import accounts, authorization, capabilities, domain, emails, \
    exceptions, local_auth, models, passwords, tokens, users, util
from .domain import Permission, Role
from .util import create_all, init_app, current_session, drop_all, \
    transaction, is_available
