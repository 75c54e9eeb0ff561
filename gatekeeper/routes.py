"""
gatekeeper/routes.py -- Declarative route classification table.

The gatekeeper never hard-codes paths. It asks a RouteTable, which is an
ordered list of RouteRule(pattern, kind, exact) entries; the first rule that
matches decides the path's kind. Paths no rule matches are PUBLIC.

Matching:
  exact=True   -- path must equal pattern ("/" only matches the site root).
  exact=False  -- path equals pattern or sits below it on a segment boundary:
                  "/api" matches "/api" and "/api/files", not "/apiary".

Order matters where lists overlap. from_settings() puts guest-only rules
first, then public, then protected, so "/api/auth/sign-in" resolves to
PUBLIC before the catch-all protected "/api" rule is reached.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RouteKind(str, Enum):
    PUBLIC = "public"
    GUEST_ONLY = "guest_only"
    PROTECTED = "protected"


@dataclass(frozen=True)
class RouteRule:
    pattern: str
    kind: RouteKind
    exact: bool = False

    def matches(self, path: str) -> bool:
        if path == self.pattern:
            return True
        if self.exact:
            return False
        base = self.pattern.rstrip("/")
        return path.startswith(base + "/")


class RouteTable:
    def __init__(self, rules: list[RouteRule], default: RouteKind = RouteKind.PUBLIC) -> None:
        self.rules = list(rules)
        self.default = default

    def classify(self, path: str) -> RouteKind:
        for rule in self.rules:
            if rule.matches(path):
                return rule.kind
        return self.default

    @classmethod
    def from_lists(
        cls,
        public: list[str],
        guest_only: list[str],
        protected: list[str],
    ) -> "RouteTable":
        """Build a table from plain path lists.

        A leading "=" marks an exact-match entry ("=/" is the site root only).
        """
        rules: list[RouteRule] = []
        for kind, entries in (
            (RouteKind.GUEST_ONLY, guest_only),
            (RouteKind.PUBLIC, public),
            (RouteKind.PROTECTED, protected),
        ):
            for entry in entries:
                exact = entry.startswith("=")
                rules.append(RouteRule(pattern=entry[1:] if exact else entry, kind=kind, exact=exact))
        return cls(rules)

    @classmethod
    def from_settings(cls, settings) -> "RouteTable":
        return cls.from_lists(settings.public_routes, settings.guest_only_routes, settings.protected_routes)


def under_prefix(path: str, prefix: str) -> bool:
    """Segment-aware prefix test shared with the rate-limit stage."""
    return RouteRule(prefix, RouteKind.PUBLIC).matches(path)
