from __future__ import annotations

from typing import Optional


class ContributorMetricsError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(ContributorMetricsError):
    """Invalid or missing inclusion criteria, paths or options.

    Always fatal: raised before any network or process activity.
    """


class SourceError(ContributorMetricsError):
    """A backend could not deliver data for one repository (or org/project)."""

    kind = "source"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(SourceError):
    """Network/process failure, timeout or exhausted retries."""

    kind = "transport"


class AuthorizationError(SourceError):
    """Credentials rejected or insufficient for this repository."""

    kind = "authorization"


class NotFoundError(SourceError):
    """Repository vanished or is not visible to the credential."""

    kind = "not_found"


class ParseError(SourceError):
    """Backend output did not match the expected format."""

    kind = "parse"
