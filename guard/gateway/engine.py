"""
Gateway decision engine.

Per request the origin fetch and the credential check run concurrently, then:

- authenticated: a pending destination cookie on the login page turns into a
  one-shot 303 back to that destination; anything else is the origin response
  untouched.
- anonymous: the origin HTML is filtered in one pass. When the page offered no
  login markup and a login location is configured, the filtered body is
  discarded in favour of a 302 to the login page that remembers where the
  visitor was going.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List, Optional

import httpx
from fastapi import Request
from fastapi.responses import RedirectResponse, Response, StreamingResponse

from guard.auth.config import GuardConfig
from guard.auth.cookies import DESTINATION_COOKIE, build_cookie, expire_cookie, get_cookie
from guard.auth.deps import verify_request
from guard.auth.token import TokenStatus, VerificationResult
from guard.filter.handlers import FilterState, build_content_filter
from guard.gateway.assets import RELOAD_SCRIPT
from guard.gateway.origin import HOP_BY_HOP_HEADERS, OriginClient
from guard.gateway.urls import clean_url, resolve_login_url

logger = logging.getLogger(__name__)

# Filtered bodies are re-encoded, so these no longer describe what we send.
_FILTERED_EXCLUDED_HEADERS = frozenset({"content-length", "content-encoding", *HOP_BY_HOP_HEADERS})


def _is_html(content_type: Optional[str]) -> bool:
    ct = (content_type or "").split(";", 1)[0].strip().lower()
    return ct in ("text/html", "application/xhtml+xml")


def _copy_headers(response: Response, upstream: httpx.Response, *, excluded: frozenset) -> None:
    for key, value in upstream.headers.multi_items():
        if key.lower() in excluded:
            continue
        response.headers.append(key, value)


async def _close_after(chunks: AsyncIterator[bytes], upstream: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in chunks:
            yield chunk
    finally:
        await upstream.aclose()


class GatewayEngine:
    def __init__(self, cfg: GuardConfig, origin: OriginClient) -> None:
        self.cfg = cfg
        self.origin = origin

    async def _verify(self, request: Request) -> VerificationResult:
        result = verify_request(request, self.cfg)
        if result.status is TokenStatus.UNAVAILABLE:
            logger.warning("Credential check unavailable, serving %s as anonymous", request.url.path)
        return result

    def _login_url(self, request: Request) -> Optional[str]:
        if not self.cfg.redirect_enabled:
            return None
        return resolve_login_url(self.cfg.login_location, str(request.url))

    async def handle(self, request: Request) -> Response:
        upstream, verification = await asyncio.gather(self.origin.fetch(request), self._verify(request))
        if verification.ok:
            return await self._authenticated(request, upstream)
        return await self._anonymous(request, upstream)

    async def _authenticated(self, request: Request, upstream: httpx.Response) -> Response:
        login_url = self._login_url(request)
        if login_url is not None and clean_url(str(request.url)) == clean_url(login_url):
            destination = get_cookie(request.headers.get("cookie"), DESTINATION_COOKIE)
            if destination:
                await upstream.aclose()
                logger.info("Authenticated on login page, 303 to saved destination %s", destination)
                resp = Response(status_code=303)
                resp.headers["location"] = destination
                resp.headers.append("set-cookie", expire_cookie(DESTINATION_COOKIE))
                return resp
        return self._pass_through(upstream)

    def _pass_through(self, upstream: httpx.Response) -> Response:
        resp = StreamingResponse(_close_after(upstream.aiter_raw(), upstream), status_code=upstream.status_code)
        _copy_headers(resp, upstream, excluded=HOP_BY_HOP_HEADERS)
        return resp

    async def _anonymous(self, request: Request, upstream: httpx.Response) -> Response:
        state = FilterState()
        current_url = clean_url(str(request.url))
        login_url = self._login_url(request)
        redirect_possible = login_url is not None and current_url != clean_url(login_url)

        if _is_html(upstream.headers.get("content-type")):
            rewriter = build_content_filter(
                state,
                omit_restricted=self.cfg.omit_restricted,
                reload_script=RELOAD_SCRIPT if self.cfg.inject_reload else None,
            )
            body = rewriter.transform(upstream.aiter_bytes(), encoding=upstream.charset_encoding)
            excluded = _FILTERED_EXCLUDED_HEADERS
        elif redirect_possible:
            # Only HTML can carry login markup, so this body can never be served.
            await upstream.aclose()
            return self._redirect_to_login(current_url, login_url)
        else:
            body = upstream.aiter_raw()
            excluded = HOP_BY_HOP_HEADERS

        if not redirect_possible:
            # Nothing can replace the body, stream it as it is filtered.
            resp = StreamingResponse(_close_after(body, upstream), status_code=upstream.status_code)
            _copy_headers(resp, upstream, excluded=excluded)
            return resp

        # The login flag is only final at end of stream; hold the output until then.
        held: List[bytes] = []
        try:
            async for chunk in body:
                held.append(chunk)
        finally:
            await upstream.aclose()

        if state.login_seen:
            resp = Response(content=b"".join(held), status_code=upstream.status_code)
            _copy_headers(resp, upstream, excluded=excluded | {"content-length"})
            return resp

        return self._redirect_to_login(current_url, login_url)

    def _redirect_to_login(self, current_url: str, login_url: str) -> Response:
        logger.info("Anonymous request for %s without login markup, 302 to %s", current_url, login_url)
        resp = RedirectResponse(url=login_url, status_code=302)
        resp.headers.append("set-cookie", build_cookie(DESTINATION_COOKIE, current_url))
        return resp
