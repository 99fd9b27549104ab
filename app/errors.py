"""Error types raised by the upstream fetch layer."""

from __future__ import annotations

from typing import Literal

UpstreamErrorKind = Literal["network", "http_status", "invalid_payload"]


class PreconditionError(RuntimeError):
    """A required credential or input is missing; the call is never attempted."""


class MissingCredentialError(PreconditionError):
    """The upstream requires a bearer token but none is configured."""


class UpstreamError(RuntimeError):
    """The upstream API could not produce a usable JSON response."""

    def __init__(
        self,
        kind: UpstreamErrorKind,
        *,
        endpoint: str = "",
        status: int | None = None,
        message: str | None = None,
    ) -> None:
        self.kind = kind
        self.endpoint = endpoint
        self.status = status
        detail = message or kind
        if status is not None:
            detail = f"{detail} (HTTP {status})"
        if endpoint:
            detail = f"{endpoint}: {detail}"
        super().__init__(detail)

    @property
    def transient(self) -> bool:
        """Return whether retrying the same request may succeed."""

        if self.kind == "network":
            return True
        if self.kind == "http_status" and self.status is not None:
            return self.status >= 500
        return False
