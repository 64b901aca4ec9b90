"""Forward compile requests to compilers hosted by another instance."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Mapping

import httpx

from .compilation.models import rejection_payload

_LOGGER = logging.getLogger(__name__)

# Hop-by-hop or body-dependent headers that must not be copied across.
_SKIPPED_HEADERS = frozenset({"host", "content-length", "connection", "transfer-encoding", "accept-encoding"})


@dataclass(slots=True)
class RemoteResponse:
    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "application/json")


class RemoteDelegate:
    """Relay a request body verbatim to ``<remote><path>`` and hand back the reply."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RemoteDelegate":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def forward(
        self,
        remote: str,
        path: str,
        body: bytes,
        headers: Mapping[str, str] | None = None,
    ) -> RemoteResponse:
        url = remote.rstrip("/") + path
        outgoing = {
            key: value
            for key, value in (headers or {}).items()
            if key.lower() not in _SKIPPED_HEADERS
        }
        _LOGGER.debug("Forwarding %d byte request to %s", len(body), url)
        try:
            response = self._client.post(url, content=body, headers=outgoing)
        except httpx.HTTPError as exc:
            _LOGGER.error("Proxy error forwarding to %s: %s", url, exc)
            payload = rejection_payload(f"Remote compiler error: {exc}")
            return RemoteResponse(
                status=200,
                body=json.dumps(payload).encode("utf-8"),
                headers={"content-type": "application/json"},
            )
        return RemoteResponse(
            status=response.status_code,
            body=response.content,
            headers={key.lower(): value for key, value in response.headers.items() if key.lower() == "content-type"},
        )


__all__ = ["RemoteDelegate", "RemoteResponse"]
