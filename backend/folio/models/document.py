"""
Contracts of the page-rendering collaborator.

The search engine only needs page text; the overlay synchronizer needs the
live geometry of the text layer of the page on screen.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .geometry import Rect


@dataclass(frozen=True)
class TextSpan:
    """
    A run of text on the rendered page.

    Attributes:
        text: The characters of the run
        boxes: One pixel box per character of ``text``
    """

    text: str
    boxes: tuple[Rect, ...]


@runtime_checkable
class DocumentSource(Protocol):
    """An open document that can hand out the plain text of its pages."""

    @property
    def page_count(self) -> int: ...

    async def get_page_text(self, page: int) -> str:
        """Text of a 1-based page, fragments joined with single spaces."""
        ...


@runtime_checkable
class TextLayer(Protocol):
    """The text layer of the page currently on screen."""

    @property
    def page(self) -> int: ...

    @property
    def width(self) -> float: ...

    @property
    def height(self) -> float: ...

    async def snapshot(self) -> tuple[TextSpan, ...]:
        """Current text spans with their pixel boxes."""
        ...
