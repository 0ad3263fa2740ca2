"""
auth/policy.py -- Path-based access policy.

The policy is an ordered, immutable table of (path pattern -> requirement)
rules built once at import time. The access middleware in api/main.py consults
it on every request; nothing mutates it afterwards.

Patterns:
  "/api/hello"      exact match
  "/api/auth/**"    the prefix itself and everything below it

Rules are checked in order and the first match wins. A path that matches no
rule falls through to AUTHENTICATED.

Outcomes are deliberately three-valued: AUTHENTICATION_REQUIRED (no identity,
surfaced as 401 / login redirect) is a different failure from ACCESS_DENIED
(identity present but missing the role, surfaced as 403).

Layer rule: no imports from api/, moves/, or fastapi.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from auth.models import Role, User


class Access(Enum):
    """Requirement kinds that need no role list."""

    PUBLIC = "public"
    AUTHENTICATED = "authenticated"


class Decision(Enum):
    ALLOW = "allow"
    AUTHENTICATION_REQUIRED = "authentication_required"
    ACCESS_DENIED = "access_denied"


@dataclass(frozen=True)
class RoleRequirement:
    """Authenticated, and holding at least one of any_of."""

    any_of: frozenset[Role]

    def allows(self, roles: frozenset[Role]) -> bool:
        return not self.any_of.isdisjoint(roles)


def any_role(*roles: Role) -> RoleRequirement:
    if not roles:
        raise ValueError("any_role() needs at least one role")
    return RoleRequirement(any_of=frozenset(roles))


Requirement = Union[Access, RoleRequirement]


@dataclass(frozen=True)
class AccessRule:
    pattern: str
    requirement: Requirement

    def matches(self, path: str) -> bool:
        if self.pattern.endswith("/**"):
            prefix = self.pattern[:-3]
            return path == prefix or path.startswith(prefix + "/")
        return path == self.pattern


class AccessPolicy:
    """Ordered rule table. Instances are read-only once built."""

    __slots__ = ("_rules", "_default")

    def __init__(self, rules: tuple[AccessRule, ...], default: Requirement = Access.AUTHENTICATED) -> None:
        self._rules = tuple(rules)
        self._default = default

    @property
    def rules(self) -> tuple[AccessRule, ...]:
        return self._rules

    def requirement_for(self, path: str) -> Requirement:
        for rule in self._rules:
            if rule.matches(path):
                return rule.requirement
        return self._default

    def is_public(self, path: str) -> bool:
        return self.requirement_for(path) is Access.PUBLIC

    def evaluate(self, path: str, user: Optional[User]) -> Decision:
        """Decide whether a caller with the given identity may reach path.

        Public paths are allowed without looking at the identity at all.
        """
        requirement = self.requirement_for(path)
        if requirement is Access.PUBLIC:
            return Decision.ALLOW
        if user is None:
            return Decision.AUTHENTICATION_REQUIRED
        if isinstance(requirement, RoleRequirement) and not requirement.allows(user.roles):
            return Decision.ACCESS_DENIED
        return Decision.ALLOW


DEFAULT_POLICY = AccessPolicy(
    (
        AccessRule("/api/hello", Access.PUBLIC),
        AccessRule("/api/auth/**", Access.PUBLIC),
        AccessRule("/oauth2/**", Access.PUBLIC),
        AccessRule("/api/secure/user", any_role(Role.USER, Role.ADMIN)),
        AccessRule("/api/secure/admin", any_role(Role.ADMIN)),
    )
)
