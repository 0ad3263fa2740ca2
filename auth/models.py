"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, zero persistence logic). Stores and
routes do the work. Role and Provider are closed enums: an unknown string can
never silently grant a capability.

Layer rule: no imports from api/, moves/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Named capability groups checked by the access policy."""

    USER = "ROLE_USER"
    ADMIN = "ROLE_ADMIN"


class Provider(str, Enum):
    """Origin of a credential: local password or an external identity provider."""

    LOCAL = "local"
    GOOGLE = "google"
    FACEBOOK = "facebook"


@dataclass
class User:
    """A registered identity in MoveMaster.

    email is the login name and is matched exactly as stored (no case folding).

    hashed_password is None for accounts created by an OAuth provider callback;
    those accounts cannot log in with a password until one is set.
    """

    email: str
    provider: Provider = Provider.LOCAL
    roles: frozenset[Role] = field(default_factory=lambda: frozenset({Role.USER}))
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None
