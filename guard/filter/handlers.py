from __future__ import annotations

from dataclasses import dataclass

from guard.filter.rewriter import Element, HTMLRewriter

RESTRICTED_SELECTOR = "[data-restricted]"
LOGIN_SELECTORS = ("foxy-customer-portal", "[data-login]")


@dataclass
class FilterState:
    """Per-response filter state. Read only after the stream is exhausted."""

    login_seen: bool = False


class OmitHandler:
    """Removes every element it receives."""

    def element(self, el: Element) -> None:
        el.remove()


class LoginPresenceHandler:
    """Records that the page already offers a way to log in."""

    def __init__(self, state: FilterState) -> None:
        self.state = state

    def element(self, el: Element) -> None:
        self.state.login_seen = True


class ReloadInjectionHandler:
    """Appends the reload script after the element."""

    def __init__(self, script: str) -> None:
        self.script = script

    def element(self, el: Element) -> None:
        el.after(self.script)


def build_content_filter(
    state: FilterState,
    *,
    omit_restricted: bool = True,
    reload_script: str | None = None,
) -> HTMLRewriter:
    """
    Wire the handlers for one response.

    `state` must be created per response; it is the only place the login
    markup flag lives.
    """
    rewriter = HTMLRewriter()
    presence = LoginPresenceHandler(state)
    for selector in LOGIN_SELECTORS:
        rewriter.on(selector, presence)
    if reload_script:
        injector = ReloadInjectionHandler(reload_script)
        for selector in LOGIN_SELECTORS:
            rewriter.on(selector, injector)
    if omit_restricted:
        rewriter.on(RESTRICTED_SELECTOR, OmitHandler())
    return rewriter
