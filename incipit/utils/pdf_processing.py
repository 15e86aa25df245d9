"""PDF inspection helpers for compiled artifacts."""

from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from PyPDF2 import PdfReader


def page_count(pdf: Union[Path, bytes]) -> Optional[int]:
    """Get page count from a PDF path or PDF bytes, or None if unreadable."""
    try:
        source = BytesIO(pdf) if isinstance(pdf, (bytes, bytearray)) else str(pdf)
        reader = PdfReader(source)
        return len(reader.pages)
    except Exception:
        return None


def looks_like_pdf(data: bytes) -> bool:
    """Cheap magic-number check used before handing bytes to a viewer."""
    return data[:5] == b"%PDF-"
