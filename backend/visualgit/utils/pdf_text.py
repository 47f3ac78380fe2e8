"""Plain-text extraction from PDF and DOCX buffers.

Two interchangeable PDF adapters are provided, one on pdfplumber and one
on PyMuPDF. Both return the page texts joined by newlines (possibly an
empty string for a PDF without a text layer) and raise `PdfTextError`
for malformed input. `extract_pdf_text` picks one by name, defaulting to
the `PDF_TEXT_BACKEND` setting.
"""

import io
from typing import Callable, Dict, Optional

import docx
import fitz
import pdfplumber

from ..config import settings


class PdfTextError(ValueError):
    """Raised when a document cannot be turned into text."""


def extract_pdf_text_pdfplumber(data: bytes) -> str:
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            parts = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:
        raise PdfTextError(f"could not read PDF: {exc}") from exc
    return "\n".join(parts)


def extract_pdf_text_pymupdf(data: bytes) -> str:
    """Extract text with PyMuPDF.

    The document opener is looked up on the `fitz` module at call time;
    a build without a callable `open` is reported as `PdfTextError`
    rather than an AttributeError deep inside the request.
    """
    opener = getattr(fitz, "open", None)
    if not callable(opener):
        raise PdfTextError("PyMuPDF does not expose a callable document opener")
    if not data:
        raise PdfTextError("could not read PDF: empty buffer")
    try:
        with opener(stream=data, filetype="pdf") as doc:
            parts = [page.get_text() for page in doc]
    except Exception as exc:
        raise PdfTextError(f"could not read PDF: {exc}") from exc
    return "\n".join(parts)


PDF_BACKENDS: Dict[str, Callable[[bytes], str]] = {
    "pdfplumber": extract_pdf_text_pdfplumber,
    "pymupdf": extract_pdf_text_pymupdf,
}


def extract_pdf_text(data: bytes, backend: Optional[str] = None) -> str:
    name = (backend or settings.PDF_TEXT_BACKEND).lower()
    adapter = PDF_BACKENDS.get(name)
    if adapter is None:
        raise PdfTextError(f"unknown PDF text backend: {name}")
    return adapter(data)


def extract_docx_text(data: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as exc:
        raise PdfTextError(f"could not read DOCX: {exc}") from exc
    return "\n".join(p.text for p in document.paragraphs)


def extract_file_text(data: bytes, ext: str) -> str:
    """Dispatch on the file extension (`pdf` or `docx`, with or without the dot)."""
    ext = ext.lower().lstrip(".")
    if ext == "pdf":
        return extract_pdf_text(data)
    if ext == "docx":
        return extract_docx_text(data)
    raise PdfTextError("Unsupported file extension for extraction")
