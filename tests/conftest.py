"""
Pytest config.

Pins the repo root on sys.path so `import guard` works when running a global
`pytest` entrypoint without installing the package, and provides an in-process
origin (httpx.MockTransport) the gateway can be pointed at.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Iterator, List, Optional

import httpx
import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

ORIGIN_URL = "http://origin.test"
JWT_SECRET = "foobar"
LOGIN_PATH = "/customer-portal/"


def html_page(content: str) -> str:
    return f"""
  <html>
    <body>
      {content}
    </body>
  </html>"""


def restricted(content: str) -> str:
    return f"<div data-restricted >{content}</div>"


def unrestricted(content: str) -> str:
    return f"<div >{content}</div>"


def login(content: str) -> str:
    return f"<div data-login >{content}</div>"


def customer_portal(content: str) -> str:
    return f'<foxy-customer-portal endpoint="" >{content}</foxy-customer-portal>'


ORIGIN_PAGES: Dict[str, Callable[[], str]] = {
    "/basic": lambda: html_page(unrestricted("Foo")),
    "/customer-portal": lambda: html_page(login("Foo")),
    "/restricted.html": lambda: html_page(unrestricted("Foo") + restricted("Bar")),
    "/restrictedWithLogin": lambda: html_page(unrestricted(login("Foo")) + restricted("Bar")),
    "/portal": lambda: html_page(customer_portal("Foo") + restricted("Bar")),
}


def mock_origin(request: httpx.Request) -> httpx.Response:
    path = request.url.path.rstrip("/") or "/"
    if path == "/style.css":
        return httpx.Response(200, headers={"content-type": "text/css"}, content=b"body { color: red; }")
    if path == "/echo-cookie":
        return httpx.Response(200, html=html_page(login(request.headers.get("cookie", ""))))
    page = ORIGIN_PAGES.get(path)
    if page is None:
        return httpx.Response(404, html="Not found")
    return httpx.Response(200, html=page(), headers={"x-origin": "mock"})


async def achunks(parts: List[bytes]) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


@pytest.fixture
def mint_token() -> Callable[..., str]:
    import jwt

    def _mint(claims: Optional[dict] = None, secret: str = JWT_SECRET) -> str:
        return jwt.encode(claims or {"foo": "bar"}, secret, algorithm="HS256")

    return _mint


@pytest.fixture(autouse=True)
def _fresh_guard_config() -> Iterator[None]:
    """Config is cached per process; every test starts from its own env."""
    from guard.auth.config import load_guard_config

    load_guard_config.cache_clear()
    yield
    load_guard_config.cache_clear()
