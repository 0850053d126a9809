"""Inspection of uploaded template source files (images and PDFs)."""

import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from compositor.core.errors import SourceFileError

PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class SourceInfo:
    type: str  # "image" | "pdf"
    width: float
    height: float
    page_count: int
    content_type: str


def _looks_like_pdf(content: bytes, content_type: str | None, filename: str | None) -> bool:
    if content.startswith(b"%PDF"):
        return True
    if content_type == PDF_CONTENT_TYPE:
        return True
    return bool(filename and filename.lower().endswith(".pdf"))


def inspect_source(content: bytes, content_type: str | None = None, filename: str | None = None) -> SourceInfo:
    """Read dimensions (and page count for PDFs) from an uploaded source.

    Images report pixel dimensions; PDFs report the first page's mediabox in
    points. Raises ``SourceFileError`` when the bytes are not readable.
    """
    if not content:
        raise SourceFileError("Source file is empty")

    if _looks_like_pdf(content, content_type, filename):
        try:
            reader = PdfReader(io.BytesIO(content))
            pages = reader.pages
            if len(pages) == 0:
                raise SourceFileError("PDF has no pages")
            box = pages[0].mediabox
            return SourceInfo(
                type="pdf",
                width=float(box.width),
                height=float(box.height),
                page_count=len(pages),
                content_type=PDF_CONTENT_TYPE,
            )
        except PdfReadError as e:
            raise SourceFileError(f"Unreadable PDF: {e}") from e

    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
            width, height = img.size
            fmt = (img.format or "png").lower()
    except (UnidentifiedImageError, OSError) as e:
        raise SourceFileError("Source file is neither an image nor a PDF") from e

    return SourceInfo(
        type="image",
        width=width,
        height=height,
        page_count=1,
        content_type=Image.MIME.get(fmt.upper(), f"image/{fmt}"),
    )
