"""
auth/registration.py -- Local account registration.

register_user() returns a flat result mapping instead of raising: a duplicate
email is a business outcome, reported to the client as a normal 200 response
carrying an "error" key.

Layer rule: no imports from api/ or moves/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import Provider, Role, User
from auth.passwords import hash_password
from auth.store import UserStore

logger = logging.getLogger("movemaster.auth.registration")

EMAIL_EXISTS = {"error": "Email already exists"}
REGISTERED = {"status": "registered"}


def register_user(store: UserStore, email: str, password: str) -> dict[str, str]:
    """Create a local ROLE_USER account for email, unless the email is taken.

    The existence check handles the common case. The UNIQUE constraint on
    users.email handles two concurrent registrations that both pass it: the
    loser gets IntegrityError, which is reported as the same conflict.
    """
    if store.get_by_email(email) is not None:
        logger.info("Registration rejected: email already exists")
        return dict(EMAIL_EXISTS)

    user = User(
        email=email,
        hashed_password=hash_password(password),
        provider=Provider.LOCAL,
        roles=frozenset({Role.USER}),
    )
    try:
        store.create_user(user)
    except IntegrityError:
        logger.info("Registration rejected: concurrent insert won the email")
        return dict(EMAIL_EXISTS)
    return dict(REGISTERED)
