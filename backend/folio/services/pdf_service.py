"""
PDF Service Module

Adapter between PDF files and the search/overlay services: page count,
plain page text, and the character geometry of a page at a given zoom.
Format parsing is left entirely to PyMuPDF, pdfplumber and PyPDF2.
"""

import asyncio
import logging
from pathlib import Path

import fitz  # PyMuPDF
import pdfplumber
from PyPDF2 import PdfReader

from ..models.document import TextSpan
from ..models.geometry import Rect
from .errors import ExtractionError, NotFound

logger = logging.getLogger(__name__)


def _page_spans(page: "fitz.Page", scale: float) -> tuple[TextSpan, ...]:
    """Read the text spans of a page with per-character boxes scaled to pixels."""
    spans = []
    raw = page.get_text("rawdict")
    for block in raw.get("blocks", []):
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                chars = span.get("chars", [])
                if not chars:
                    continue
                text = "".join(c["c"] for c in chars)
                boxes = tuple(
                    Rect(
                        c["bbox"][0] * scale,
                        c["bbox"][1] * scale,
                        (c["bbox"][2] - c["bbox"][0]) * scale,
                        (c["bbox"][3] - c["bbox"][1]) * scale,
                    )
                    for c in chars
                )
                spans.append(TextSpan(text=text, boxes=boxes))
    return tuple(spans)


class PdfTextLayer:
    """
    Text layer of one PDF page rendered at a given scale.

    Geometry comes straight from the file, so the layout is settled as soon
    as it has been read.
    """

    def __init__(self, service: "PDFService", page: int, scale: float = 1.0) -> None:
        self._service = service
        self._page = page
        self._scale = scale
        self._size: tuple[float, float] | None = None
        self._spans: tuple[TextSpan, ...] | None = None

    @property
    def page(self) -> int:
        return self._page

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def width(self) -> float:
        return self._load()[0][0]

    @property
    def height(self) -> float:
        return self._load()[0][1]

    def _load(self) -> tuple[tuple[float, float], tuple[TextSpan, ...]]:
        if self._size is None or self._spans is None:
            self._size, self._spans = self._service.read_layer(self._page, self._scale)
        return self._size, self._spans

    async def wait_until_ready(self) -> bool:
        await asyncio.to_thread(self._load)
        return True

    async def snapshot(self) -> tuple[TextSpan, ...]:
        _, spans = await asyncio.to_thread(self._load)
        return spans


class PDFService:
    """
    An open PDF document acting as the page-rendering collaborator.
    """

    def __init__(self, pdf_path: str | Path) -> None:
        self.pdf_path = Path(pdf_path)
        if not self.pdf_path.exists():
            raise NotFound(f"PDF {self.pdf_path.name} not found")
        if not self.pdf_path.suffix.lower() == ".pdf":
            raise ValueError(f"{self.pdf_path.name} is not a PDF file")
        self._page_count: int | None = None

    @property
    def page_count(self) -> int:
        if self._page_count is None:
            with fitz.open(str(self.pdf_path)) as doc:
                self._page_count = doc.page_count
        return self._page_count

    def _check_page(self, page_num: int) -> None:
        if page_num < 1 or page_num > self.page_count:
            raise ValueError(
                f"Page {page_num} is out of range. PDF has {self.page_count} pages."
            )

    def read_layer(
        self, page_num: int, scale: float = 1.0
    ) -> tuple[tuple[float, float], tuple[TextSpan, ...]]:
        """
        Read the pixel size and text spans of a page at the given scale.
        """
        self._check_page(page_num)
        with fitz.open(str(self.pdf_path)) as doc:
            page = doc[page_num - 1]
            size = (page.rect.width * scale, page.rect.height * scale)
            return size, _page_spans(page, scale)

    def extract_page_text(self, page_num: int) -> str:
        """
        Extract text from a specific page of the PDF.

        Span texts from PyMuPDF are joined with single spaces so offsets line
        up with the text layer; pdfplumber and then PyPDF2 are fallbacks.
        """
        self._check_page(page_num)

        try:
            _, spans = self.read_layer(page_num)
            return " ".join(span.text for span in spans)
        except Exception as e:
            logger.debug(f"PyMuPDF text extraction failed on page {page_num}: {e}")

        try:
            with pdfplumber.open(self.pdf_path) as pdf:
                # pdfplumber uses 0-based indexing
                page = pdf.pages[page_num - 1]
                return page.extract_text() or ""
        except Exception as e:
            # Fallback to PyPDF2 if pdfplumber fails
            try:
                with open(self.pdf_path, "rb") as file:
                    reader = PdfReader(file)
                    return reader.pages[page_num - 1].extract_text() or ""
            except Exception as fallback_error:
                raise ExtractionError(
                    f"Failed to extract text with both pdfplumber and PyPDF2: {str(e)}, {str(fallback_error)}"
                ) from fallback_error

    async def get_page_text(self, page: int) -> str:
        return await asyncio.to_thread(self.extract_page_text, page)

    def text_layer(self, page: int, scale: float = 1.0) -> PdfTextLayer:
        return PdfTextLayer(self, page, scale)
