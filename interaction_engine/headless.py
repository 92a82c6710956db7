"""In-memory element tree implementing the adapter protocol.

Pages are described in YAML and loaded with :func:`load_page`::

    url: http://localhost:3000/signup
    elements:
      - tag: form
        attrs: {id: signup}
        children:
          - tag: input
            attrs: {type: email, name: email, required: true}
            label: Email
          - tag: button
            attrs: {type: submit}
            text: Sign up
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional
import re

import yaml
from pydantic import BaseModel, Field, ValidationError

from .adapter import Geometry
from .errors import ConfigError


class BoxSpec(BaseModel):
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 20


class ElementSpec(BaseModel):
    tag: str
    attrs: dict[str, Any] = Field(default_factory=dict)
    value: Optional[str] = None
    text: str = ""
    label: Optional[str] = None
    visible: bool = True
    box: BoxSpec = Field(default_factory=BoxSpec)
    children: list["ElementSpec"] = Field(default_factory=list)


class PageSpec(BaseModel):
    url: str = "about:blank"
    elements: list[ElementSpec] = Field(default_factory=list)


@dataclass(eq=False)
class HeadlessElement:
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    value: str = ""
    text: str = ""
    labels: list[str] = field(default_factory=list)
    visible: bool = True
    box: Geometry = field(default_factory=Geometry)
    parent: Optional["HeadlessElement"] = None
    children: list["HeadlessElement"] = field(default_factory=list)

    def append(self, child: "HeadlessElement") -> "HeadlessElement":
        child.parent = self
        self.children.append(child)
        return child

    def descendants(self) -> Iterator["HeadlessElement"]:
        for child in self.children:
            yield child
            yield from child.descendants()

    def ancestors(self) -> Iterator["HeadlessElement"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    @property
    def classes(self) -> set[str]:
        return set(self.attrs.get("class", "").split())

    def __repr__(self) -> str:
        ident = f"#{self.attrs['id']}" if "id" in self.attrs else ""
        return f"<{self.tag}{ident}>"


@dataclass(frozen=True)
class DispatchedEvent:
    element: HeadlessElement
    event: str
    detail: dict[str, Any]


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

_COMPOUND = re.compile(r"^(?P<tag>[a-zA-Z][\w-]*|\*)?(?P<rest>.*)$")
_SIMPLE = re.compile(
    r"#(?P<id>[\w-]+)"
    r"|\.(?P<cls>[\w-]+)"
    r"|:not\(\[(?P<not_attr>[\w-]+)(?:=[\"']?(?P<not_value>[^\"'\]]*)[\"']?)?\]\)"
    r"|\[(?P<attr>[\w-]+)(?:=[\"']?(?P<value>[^\"'\]]*)[\"']?)?\]"
)


@dataclass(frozen=True)
class _Compound:
    tag: Optional[str]
    ids: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()
    attrs: tuple[tuple[str, Optional[str]], ...] = ()
    negated: tuple[tuple[str, Optional[str]], ...] = ()

    def matches(self, element: HeadlessElement) -> bool:
        if self.tag and self.tag != "*" and element.tag.lower() != self.tag.lower():
            return False
        if any(element.attrs.get("id") != ident for ident in self.ids):
            return False
        if not set(self.classes) <= element.classes:
            return False
        for name, value in self.attrs:
            if not _attr_matches(element, name, value):
                return False
        for name, value in self.negated:
            if _attr_matches(element, name, value):
                return False
        return True


def _attr_matches(element: HeadlessElement, name: str, value: Optional[str]) -> bool:
    if name not in element.attrs:
        return False
    return value is None or element.attrs[name] == value


def _parse_compound(text: str) -> _Compound:
    match = _COMPOUND.match(text)
    if match is None:  # pragma: no cover - regex accepts any input
        raise ValueError(f"Unsupported selector: {text}")
    rest = match.group("rest")
    ids: list[str] = []
    classes: list[str] = []
    attrs: list[tuple[str, Optional[str]]] = []
    negated: list[tuple[str, Optional[str]]] = []
    position = 0
    for simple in _SIMPLE.finditer(rest):
        if simple.start() != position:
            raise ValueError(f"Unsupported selector: {text}")
        position = simple.end()
        if simple.group("id"):
            ids.append(simple.group("id"))
        elif simple.group("cls"):
            classes.append(simple.group("cls"))
        elif simple.group("not_attr"):
            negated.append((simple.group("not_attr"), simple.group("not_value")))
        else:
            attrs.append((simple.group("attr"), simple.group("value")))
    if position != len(rest):
        raise ValueError(f"Unsupported selector: {text}")
    return _Compound(
        tag=match.group("tag"),
        ids=tuple(ids),
        classes=tuple(classes),
        attrs=tuple(attrs),
        negated=tuple(negated),
    )


def _split_top_level(text: str, separator: Callable[[str], bool]) -> list[str]:
    """Split on ``separator`` characters outside brackets, parentheses and quotes."""

    parts: list[str] = []
    current: list[str] = []
    depth = 0
    quote: Optional[str] = None
    for char in text:
        if quote is not None:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        elif depth == 0 and separator(char):
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def _parse_selector(selector: str) -> list[list[_Compound]]:
    groups = []
    for part in _split_top_level(selector, lambda char: char == ","):
        chain = [_parse_compound(token) for token in _split_top_level(part, str.isspace) if token]
        if not chain:
            raise ValueError(f"Unsupported selector: {selector!r}")
        groups.append(chain)
    return groups


def _chain_matches(element: HeadlessElement, chain: list[_Compound]) -> bool:
    """Match right to left; ancestor compounds may match outside a query's scope."""

    if not chain[-1].matches(element):
        return False
    ancestors = list(element.ancestors())
    for compound in reversed(chain[:-1]):
        while ancestors:
            if compound.matches(ancestors.pop(0)):
                break
        else:
            return False
    return True


# ---------------------------------------------------------------------------
# Page
# ---------------------------------------------------------------------------


class HeadlessPage:
    """A mutable element tree; records every dispatched event for inspection."""

    def __init__(self, url: str = "about:blank") -> None:
        self.url = url
        self.root = HeadlessElement(tag="html")
        self.events: list[DispatchedEvent] = []
        self.submissions: list[HeadlessElement] = []
        self.scroll_position: tuple[float, float] = (0.0, 0.0)
        self.scrolled_into_view: list[tuple[HeadlessElement, str, str]] = []

    @classmethod
    def from_spec(cls, spec: PageSpec) -> "HeadlessPage":
        page = cls(url=spec.url)
        for element_spec in spec.elements:
            page.root.append(_build_element(element_spec))
        return page

    def add(self, element: HeadlessElement, *, parent: Optional[HeadlessElement] = None) -> HeadlessElement:
        return (parent or self.root).append(element)

    def remove(self, element: HeadlessElement) -> None:
        if element.parent is not None:
            element.parent.children.remove(element)
            element.parent = None

    def select(self, selector: str, *, within: Optional[HeadlessElement] = None) -> list[HeadlessElement]:
        scope = within or self.root
        groups = _parse_selector(selector)
        return [
            element
            for element in scope.descendants()
            if any(_chain_matches(element, chain) for chain in groups)
        ]

    def events_for(self, element: HeadlessElement) -> list[str]:
        return [entry.event for entry in self.events if entry.element is element]

    # adapter protocol -----------------------------------------------------

    async def query(self, selector: str, *, within: Any = None) -> Optional[HeadlessElement]:
        matches = self.select(selector, within=within)
        return matches[0] if matches else None

    async def query_all(self, selector: str, *, within: Any = None) -> list[HeadlessElement]:
        return self.select(selector, within=within)

    async def read_value(self, element: HeadlessElement) -> str:
        return element.value

    async def write_value(self, element: HeadlessElement, value: str) -> None:
        element.value = value

    async def text_content(self, element: HeadlessElement) -> str:
        return element.text + "".join([await self.text_content(child) for child in element.children])

    async def get_attribute(self, element: HeadlessElement, name: str) -> Optional[str]:
        return element.attrs.get(name)

    async def tag_name(self, element: HeadlessElement) -> str:
        return element.tag.lower()

    async def labels(self, element: HeadlessElement) -> list[str]:
        return list(element.labels)

    async def dispatch(self, element: HeadlessElement, event: str, **detail: Any) -> None:
        self.events.append(DispatchedEvent(element=element, event=event, detail=dict(detail)))
        if event == "submit":
            self.submissions.append(element)
        elif event == "click" and _is_submit_button(element):
            form = next((node for node in element.ancestors() if node.tag.lower() == "form"), None)
            if form is not None:
                await self.dispatch(form, "submit", bubbles=True, cancelable=True)

    async def geometry(self, element: HeadlessElement) -> Geometry:
        return element.box

    async def is_visible(self, element: HeadlessElement) -> bool:
        if not element.visible:
            return False
        return all(ancestor.visible for ancestor in element.ancestors())

    async def scroll_into_view(
        self,
        element: HeadlessElement,
        *,
        behavior: str = "smooth",
        block: str = "center",
    ) -> None:
        self.scrolled_into_view.append((element, behavior, block))

    async def scroll_to(self, x: float, y: float, *, behavior: str = "smooth") -> None:
        self.scroll_position = (x, y)


def _is_submit_button(element: HeadlessElement) -> bool:
    tag = element.tag.lower()
    kind = element.attrs.get("type")
    if tag == "button":
        return kind is None or kind == "submit"
    return tag == "input" and kind == "submit"


def _build_element(spec: ElementSpec) -> HeadlessElement:
    attrs: dict[str, str] = {}
    for key, raw in spec.attrs.items():
        if raw is False or raw is None:
            continue
        attrs[key] = "" if raw is True else str(raw)
    element = HeadlessElement(
        tag=spec.tag,
        attrs=attrs,
        value=spec.value if spec.value is not None else attrs.get("value", ""),
        text=spec.text,
        labels=[spec.label] if spec.label else [],
        visible=spec.visible,
        box=Geometry(x=spec.box.x, y=spec.box.y, width=spec.box.width, height=spec.box.height),
    )
    for child in spec.children:
        element.append(_build_element(child))
    return element


def load_page(path: Path) -> HeadlessPage:
    """Load a headless page description from YAML or JSON."""

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Page file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Page file {path} must contain a mapping")
    try:
        spec = PageSpec.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Page file {path} is invalid: {exc}") from exc
    return HeadlessPage.from_spec(spec)
