
import asyncio
import io
from typing import List

from pdfminer.high_level import extract_text as pdf_extract
from docx import Document as DocxDocument
import chardet

PAGE_BREAK = "\f"

SUPPORTED_TYPES = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
}


class UnsupportedDocumentError(Exception):
    """Parser has no handler for the declared MIME type"""
    pass


def is_supported_type(mime_type: str) -> bool:
    return mime_type in SUPPORTED_TYPES


def supported_mime_types() -> List[str]:
    return list(SUPPORTED_TYPES)


def file_type_for(mime_type: str) -> str:
    if mime_type not in SUPPORTED_TYPES:
        raise UnsupportedDocumentError(
            f"Unsupported file type: {mime_type}. Supported: {', '.join(SUPPORTED_TYPES)}"
        )
    return SUPPORTED_TYPES[mime_type]


def _parse_pdf(content: bytes) -> str:
    raw = pdf_extract(io.BytesIO(content))
    # pdfminer separates pages with form feeds; blank pages are dropped
    pages = [p.strip() for p in raw.split(PAGE_BREAK) if p.strip()]
    return "\n\n".join(pages)


def _parse_docx(content: bytes) -> str:
    doc = DocxDocument(io.BytesIO(content))
    return "\n".join(p.text for p in doc.paragraphs).strip()


def _parse_txt(content: bytes) -> str:
    enc = chardet.detect(content).get("encoding") or "utf-8"
    try:
        text = content.decode(enc, errors="ignore")
    except LookupError:
        text = content.decode("utf-8", errors="ignore")
    return text.strip()


_PARSERS = {
    "pdf": _parse_pdf,
    "docx": _parse_docx,
    "txt": _parse_txt,
}


async def parse_document(content: bytes, mime_type: str) -> str:
    parser = _PARSERS[file_type_for(mime_type)]
    # pdfminer and python-docx are blocking
    return await asyncio.to_thread(parser, content)
