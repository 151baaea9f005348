from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CharacterDescriptor


class ConfigError(Exception):
    """Roster or configuration file is missing or malformed."""


class WowApiError(Exception):
    """Base exception for API/client errors."""


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP = "http"
    PARSE = "parse"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"


class UpstreamError(WowApiError):
    """A categorized failure for one character against one upstream."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        *,
        status: int | None = None,
        descriptor: CharacterDescriptor | None = None,
        source: str = "",
    ):
        self.kind = kind
        self.status = status
        self.descriptor = descriptor
        self.source = source
        super().__init__(message or self._default_message())

    def _default_message(self) -> str:
        who = self.descriptor.name if self.descriptor else "?"
        status = f" {self.status}" if self.status is not None else ""
        return f"{self.source or 'upstream'} {self.kind.value}{status} ({who})"

    @property
    def retryable(self) -> bool:
        if self.kind in (ErrorKind.NETWORK, ErrorKind.RATE_LIMITED):
            return True
        return self.kind is ErrorKind.HTTP and self.status is not None and self.status >= 500

    @classmethod
    def from_status(
        cls,
        status: int,
        *,
        descriptor: CharacterDescriptor | None = None,
        source: str = "",
        body: str = "",
    ) -> UpstreamError:
        if status == 404:
            return WowNotFound(descriptor=descriptor, source=source)
        if status == 429:
            return WowRateLimited(descriptor=descriptor, source=source)
        message = f"{source or 'upstream'} error {status}"
        if body:
            message += f": {body[:200]}"
        return cls(ErrorKind.HTTP, message, status=status, descriptor=descriptor, source=source)


class WowNotFound(UpstreamError):
    """Resource not found (404)."""

    def __init__(self, message: str = "", **kwargs):
        kwargs.setdefault("status", 404)
        super().__init__(ErrorKind.NOT_FOUND, message, **kwargs)


class WowRateLimited(UpstreamError):
    """Rate limit from a remote API (429)."""

    def __init__(self, message: str = "", **kwargs):
        kwargs.setdefault("status", 429)
        super().__init__(ErrorKind.RATE_LIMITED, message, **kwargs)


class BlizzardNotConfigured(WowApiError):
    """Blizzard client id/secret are not set."""


class BlizzardAuthError(WowApiError):
    """OAuth token request failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status
