"""Capability interface between the engine and the page under test."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class Geometry:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@runtime_checkable
class ElementTreeAdapter(Protocol):
    """Everything the engine needs from a page; element handles are opaque."""

    async def query(self, selector: str, *, within: Any = None) -> Optional[Any]: ...

    async def query_all(self, selector: str, *, within: Any = None) -> list[Any]: ...

    async def read_value(self, element: Any) -> str: ...

    async def write_value(self, element: Any, value: str) -> None: ...

    async def text_content(self, element: Any) -> str: ...

    async def get_attribute(self, element: Any, name: str) -> Optional[str]: ...

    async def tag_name(self, element: Any) -> str: ...

    async def labels(self, element: Any) -> list[str]: ...

    async def dispatch(self, element: Any, event: str, **detail: Any) -> None: ...

    async def geometry(self, element: Any) -> Geometry: ...

    async def is_visible(self, element: Any) -> bool: ...

    async def scroll_into_view(self, element: Any, *, behavior: str = "smooth", block: str = "center") -> None: ...

    async def scroll_to(self, x: float, y: float, *, behavior: str = "smooth") -> None: ...


async def resolve(adapter: ElementTreeAdapter, target: Any) -> Optional[Any]:
    """Accept either a selector or an element handle already obtained from ``adapter``."""

    if isinstance(target, str):
        return await adapter.query(target)
    return target


def describe_target(target: Any) -> str:
    return target if isinstance(target, str) else repr(target)
