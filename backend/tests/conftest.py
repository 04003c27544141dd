import os
import tempfile

import fitz  # PyMuPDF
import pytest

SAMPLE_PAGES = ["the cat sat", "on the mat"]


def write_pdf(path: str, pages: list[str]) -> str:
    """Write a PDF with one line of text per page."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text, fontsize=12)
    doc.save(path)
    doc.close()
    return path


@pytest.fixture
def pdf_dir():
    """Temporary directory holding sample.pdf"""
    with tempfile.TemporaryDirectory() as temp_dir:
        write_pdf(os.path.join(temp_dir, "sample.pdf"), SAMPLE_PAGES)
        yield temp_dir


@pytest.fixture
def sample_pdf(pdf_dir):
    return os.path.join(pdf_dir, "sample.pdf")
