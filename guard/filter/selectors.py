from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# tag, tag[attr], [attr], [attr=value], [attr="value"], chained attribute tests.
_SELECTOR_RE = re.compile(r"^\s*(?P<tag>[A-Za-z][A-Za-z0-9-]*|\*)?(?P<attrs>(?:\[[^\]]+\])*)\s*$")
_ATTR_RE = re.compile(r"\[\s*(?P<name>[^\s=\]]+)\s*(?:=\s*(?P<value>\"[^\"]*\"|'[^']*'|[^\]\s]+)\s*)?\]")


@dataclass(frozen=True)
class Selector:
    """
    A single compound selector: optional tag name plus attribute tests.

    Only the forms the gateway binds handlers to are supported; combinators,
    classes and pseudo-classes are rejected at parse time.
    """

    tag: Optional[str]
    attributes: Tuple[Tuple[str, Optional[str]], ...]
    source: str

    @classmethod
    def parse(cls, selector: str) -> "Selector":
        m = _SELECTOR_RE.match(selector or "")
        if not m or not (m.group("tag") or m.group("attrs")):
            raise ValueError(f"Unsupported selector: {selector!r}")
        tag = m.group("tag")
        if tag == "*":
            tag = None
        attrs = []
        for am in _ATTR_RE.finditer(m.group("attrs") or ""):
            value = am.group("value")
            if value is not None and value[:1] in ("'", '"'):
                value = value[1:-1]
            attrs.append((am.group("name").lower(), value))
        return cls(tag=tag.lower() if tag else None, attributes=tuple(attrs), source=selector)

    def matches(self, tag: str, attrs: Dict[str, Optional[str]]) -> bool:
        if self.tag is not None and tag != self.tag:
            return False
        for name, value in self.attributes:
            if name not in attrs:
                return False
            if value is not None and (attrs[name] or "") != value:
                return False
        return True
