"""HTTP client for the upstream drama content API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..config import Settings
from ..errors import MissingCredentialError, UpstreamError

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 240


def clean_params(params: Mapping[str, Any] | None) -> dict[str, str | int | float]:
    """Drop parameters whose value is ``None`` or blank."""

    cleaned: dict[str, str | int | float] = {}
    for name, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, str):
            if not value.strip():
                continue
            cleaned[name] = value
        elif isinstance(value, bool):
            cleaned[name] = "true" if value else "false"
        else:
            cleaned[name] = value
    return cleaned


class UpstreamClient:
    """Thin wrapper issuing GET requests against the upstream API.

    It neither retries nor caches; see :func:`app.services.retry.with_retry`
    and :class:`app.services.cache.ResponseCache` for those concerns.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": self._settings.upstream_accept_language,
            "User-Agent": self._settings.upstream_user_agent,
        }
        token = self._settings.upstream_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif self._settings.upstream_requires_token:
            raise MissingCredentialError(
                "UPSTREAM_TOKEN is required but not configured"
            )
        return headers

    async def fetch_json(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Return the decoded JSON body for ``endpoint`` or raise ``UpstreamError``."""

        headers = self._headers()
        resolved_timeout = (
            timeout if timeout is not None else self._settings.upstream_timeout_seconds
        )
        try:
            response = await self._client.get(
                endpoint,
                params=clean_params(params),
                headers=headers,
                timeout=resolved_timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning("Upstream %s timed out after %.1fs", endpoint, resolved_timeout)
            raise UpstreamError("network", endpoint=endpoint, message="timeout") from exc
        except httpx.HTTPError as exc:
            logger.warning("Upstream %s failed: %s", endpoint, exc)
            raise UpstreamError(
                "network", endpoint=endpoint, message=exc.__class__.__name__
            ) from exc

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Upstream %s returned %s: %s",
                endpoint,
                response.status_code,
                response.text[:PREVIEW_LENGTH],
            )
            raise UpstreamError(
                "http_status", endpoint=endpoint, status=response.status_code
            )

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON upstream response for %s", endpoint)
            raise UpstreamError(
                "invalid_payload", endpoint=endpoint, status=response.status_code
            ) from exc
