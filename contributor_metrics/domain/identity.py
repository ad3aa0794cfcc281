from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

EMAIL_BASIS = "email"
NAME_BASIS = "name"


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if not email or not isinstance(email, str):
        return None
    value = email.strip().casefold()
    local, sep, domain = value.partition("@")
    if not sep or not local or not domain or "@" in domain:
        return None
    if any(ch.isspace() for ch in value):
        return None
    return value


def _normalize_name(name: Optional[str]) -> str:
    if not isinstance(name, str):
        return ""
    return " ".join(name.split()).casefold()


@dataclass(frozen=True)
class IdentityKey:
    """Deduplication key for one contributor.

    The email is preferred (trimmed and case-folded). When the email is
    missing or not shaped like ``local@domain`` the case-folded name is used
    instead. Building a key never raises.
    """

    basis: str
    value: str

    @classmethod
    def from_commit(cls, name: Optional[str], email: Optional[str]) -> "IdentityKey":
        normalized = _normalize_email(email)
        if normalized is not None:
            return cls(EMAIL_BASIS, normalized)
        return cls(NAME_BASIS, _normalize_name(name))

    def __str__(self) -> str:
        return self.value
