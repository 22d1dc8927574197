"""
Per-page text extraction from PDFs using PyMuPDF.

Scanned or image-only PDFs yield no pages; that is a valid outcome, not an
error. No OCR is attempted.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

import fitz  # PyMuPDF

from apps.core.errors import ExtractionError

logger = logging.getLogger(__name__)


@dataclass
class PageText:
    """Text of one PDF page (1-based page number)."""
    page: int
    text: str


def extract_pages(file_path: Path) -> List[PageText]:
    """
    Extract the text of every page that has any.

    Returns:
        Pages with non-blank text, in page order

    Raises:
        ExtractionError: If the file cannot be opened or parsed as a PDF
    """
    pages = []
    try:
        with fitz.open(file_path) as doc:
            for index, page in enumerate(doc):
                text = page.get_text().strip()
                if text:
                    pages.append(PageText(page=index + 1, text=text))
    except Exception as e:
        raise ExtractionError(f"Failed to extract text from PDF: {e}")

    if not pages:
        logger.warning(f"No text extracted from PDF {file_path} (may be image-based)")
    else:
        logger.info(f"Extracted {len(pages)} pages from {file_path.name}")

    return pages
