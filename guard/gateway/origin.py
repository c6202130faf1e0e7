from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import httpx
from fastapi import Request

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


def forward_request_headers(request: Request) -> List[Tuple[str, str]]:
    # httpx sets Host from the origin URL.
    excluded = {"host", "content-length", *HOP_BY_HOP_HEADERS}
    return [(k, v) for k, v in request.headers.items() if k.lower() not in excluded]


def origin_target_url(origin_url: str, request: Request) -> str:
    path = request.url.path or "/"
    query = request.url.query
    return f"{origin_url.rstrip('/')}{path}" + (f"?{query}" if query else "")


class OriginClient:
    """
    Outbound transport to the origin.

    Responses are returned unread (streamed); callers own them and must
    `aclose()` them. No retries and no timeouts: both belong to the
    surrounding infrastructure.
    """

    def __init__(self, origin_url: str, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.origin_url = origin_url.rstrip("/")
        self._client = httpx.AsyncClient(transport=transport, timeout=None, follow_redirects=False)

    async def fetch(self, request: Request) -> httpx.Response:
        url = origin_target_url(self.origin_url, request)
        body = await request.body()
        outbound = self._client.build_request(
            request.method,
            url,
            headers=forward_request_headers(request),
            content=body or None,
        )
        logger.debug("Forwarding %s %s", request.method, url)
        return await self._client.send(outbound, stream=True)

    async def aclose(self) -> None:
        await self._client.aclose()
