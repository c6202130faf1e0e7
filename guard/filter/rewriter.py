"""
Streaming HTML rewriter.

A push parser (`html.parser.HTMLParser`) is fed one chunk at a time and every
event is re-emitted as soon as it is known, so output is produced
incrementally and the document is never held in memory as a whole. Element
handlers are bound to simple selectors and may remove an element (with its
subtree) or append raw HTML after it.

Text, comments, doctypes and start tags are re-emitted verbatim. End tags are
re-emitted in their normalized `</tag>` form.
"""

from __future__ import annotations

import codecs
import re
from html.parser import HTMLParser
from typing import AsyncIterable, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from guard.filter.selectors import Selector

# Elements that never have content or an end tag.
VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

# A start or end tag that is still open when the document ends.
_TAG_OPEN = re.compile(r"</?[a-zA-Z]")


class Element:
    """The element a handler is invoked with. Mutations apply to the output stream."""

    def __init__(self, tag_name: str, attrs: List[Tuple[str, Optional[str]]], raw: str) -> None:
        self.tag_name = tag_name
        # First occurrence wins, like browsers.
        self.attributes: Dict[str, Optional[str]] = {}
        for name, value in attrs:
            self.attributes.setdefault(name, value)
        self.raw = raw
        self.removed = False
        self._after: List[str] = []

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self.attributes

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name.lower())

    def remove(self) -> None:
        """Drop this element and everything inside it."""
        self.removed = True

    def after(self, content: str) -> None:
        """Insert raw HTML right after this element's end tag."""
        self._after.append(content)

    def __repr__(self) -> str:
        return f"<Element {self.tag_name} removed={self.removed}>"


class ElementHandler(Protocol):
    def element(self, el: Element) -> None: ...


class _RewritingParser(HTMLParser):
    def __init__(self, bindings: List[Tuple[Selector, ElementHandler]]) -> None:
        super().__init__(convert_charrefs=False)
        self._bindings = bindings
        self._out: List[str] = []
        self._open: List[Element] = []
        # Number of removed elements currently open; output is suppressed while > 0.
        self._removed_depth = 0
        # Index in self.rawdata of the next character the parser has not consumed.
        self._consumed = 0

    def drain(self) -> str:
        out = "".join(self._out)
        self._out.clear()
        return out

    def finish(self) -> None:
        # Whatever is left could not be parsed without more input. A tag cut
        # off by the end of the document is dropped, like browsers do; any
        # other tail (text, a bare `&name`, an open comment) goes out as sent.
        tail, self.rawdata = self.rawdata, ""
        if self.cdata_elem is not None or not _TAG_OPEN.match(tail):
            self._emit(tail)
        self.close()
        # Elements left open at end of document still get their appended content.
        while self._open:
            self._pop()

    def _emit(self, text: str) -> None:
        if text and self._removed_depth == 0:
            self._out.append(text)

    def _dispatch(self, el: Element) -> None:
        for selector, handler in self._bindings:
            if selector.matches(el.tag_name, el.attributes):
                handler.element(el)

    def _pop(self) -> Element:
        el = self._open.pop()
        if el.removed:
            self._removed_depth -= 1
        for content in el._after:
            self._emit(content)
        return el

    def _start(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        el = Element(tag, attrs, self.get_starttag_text() or "")
        self._dispatch(el)
        if not el.removed:
            self._emit(el.raw)
        if tag in VOID_ELEMENTS:
            for content in el._after:
                self._emit(content)
            return
        self._open.append(el)
        if el.removed:
            self._removed_depth += 1

    def handle_starttag(self, tag, attrs):
        self._start(tag, attrs)

    def handle_startendtag(self, tag, attrs):
        # The self-closing slash is ignored on non-void HTML elements, so treat
        # `<div data-restricted/>` as an open element.
        self._start(tag, attrs)

    def handle_endtag(self, tag):
        idx = None
        for i in range(len(self._open) - 1, -1, -1):
            if self._open[i].tag_name == tag:
                idx = i
                break
        if idx is None:
            # Stray end tag.
            self._emit(f"</{tag}>")
            return
        # Implicitly closed children first.
        while len(self._open) - 1 > idx:
            self._pop()
        if not self._open[-1].removed:
            self._emit(f"</{tag}>")
        self._pop()

    def handle_data(self, data):
        self._emit(data)

    def updatepos(self, i, j):
        self._consumed = j
        return super().updatepos(i, j)

    def goahead(self, end):
        super().goahead(end)
        # The consumed prefix has been cut from rawdata.
        self._consumed = 0

    def _reference(self, prefix: str, name: str) -> str:
        # References are reported without their terminator; keep the `;`
        # only if the document had one.
        ref = f"{prefix}{name}"
        if self.rawdata.startswith(";", self._consumed + len(ref)):
            ref += ";"
        return ref

    def handle_entityref(self, name):
        self._emit(self._reference("&", name))

    def handle_charref(self, name):
        self._emit(self._reference("&#", name))

    def handle_comment(self, data):
        self._emit(f"<!--{data}-->")

    def handle_decl(self, decl):
        self._emit(f"<!{decl}>")

    def handle_pi(self, data):
        self._emit(f"<?{data}>")

    def unknown_decl(self, data):
        self._emit(f"<![{data}]>")


def _resolve_encoding(encoding: Optional[str]) -> str:
    try:
        return codecs.lookup(encoding or "utf-8").name
    except LookupError:
        return "utf-8"


class HTMLRewriter:
    """
    Bind element handlers to selectors, then run documents through them.

    Each call to `transform`/`transform_text` uses a fresh parser, so a
    rewriter may be reused, but handler state is whatever the handlers keep.
    """

    def __init__(self) -> None:
        self._bindings: List[Tuple[Selector, ElementHandler]] = []

    def on(self, selector: str, handler: ElementHandler) -> "HTMLRewriter":
        self._bindings.append((Selector.parse(selector), handler))
        return self

    def transform_text(self, chunks: Iterable[str]) -> Iterator[str]:
        parser = _RewritingParser(list(self._bindings))
        for chunk in chunks:
            parser.feed(chunk)
            out = parser.drain()
            if out:
                yield out
        parser.finish()
        out = parser.drain()
        if out:
            yield out

    async def transform(self, chunks: AsyncIterable[bytes], encoding: Optional[str] = None) -> AsyncIterator[bytes]:
        """Rewrite a byte stream, decoding and re-encoding with `encoding` (utf-8 by default)."""
        codec = _resolve_encoding(encoding)
        decoder = codecs.getincrementaldecoder(codec)(errors="replace")
        parser = _RewritingParser(list(self._bindings))
        async for chunk in chunks:
            if not chunk:
                continue
            parser.feed(decoder.decode(chunk))
            out = parser.drain()
            if out:
                yield out.encode(codec, errors="xmlcharrefreplace")
        parser.feed(decoder.decode(b"", final=True))
        parser.finish()
        out = parser.drain()
        if out:
            yield out.encode(codec, errors="xmlcharrefreplace")
