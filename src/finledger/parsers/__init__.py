"""Statement format parsers.

Callers never pick a parser: :func:`parse_import_data` sniffs the format
from the file name, MIME type and content shape.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from finledger.domain.errors import ParseError
from finledger.parsers.ai_pdf import looks_like_ai_envelope, parse_ai_envelope, strip_fences
from finledger.parsers.base import ParseResult
from finledger.parsers.broker_statement import looks_like_broker_statement, parse_broker_statement
from finledger.parsers.delimited import parse_delimited
from finledger.parsers.har import looks_like_har, parse_har
from finledger.parsers.qfx import looks_like_qfx, parse_qfx

logger = logging.getLogger(__name__)

ENCODINGS = ("utf-8-sig", "cp1252")

__all__ = ["ParseResult", "parse_import_data", "parse_import_file", "decode_bytes"]


def _suffix(filename: Optional[str]) -> str:
    return Path(filename).suffix.lower() if filename else ""


def _parse_json(text: str) -> ParseResult:
    try:
        document = json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        raise ParseError(f"Truncated or corrupt JSON file: {e}")
    if looks_like_har(document):
        return parse_har(document)
    if looks_like_ai_envelope(document):
        return parse_ai_envelope(document)
    raise ParseError("Unrecognized JSON format: neither a HAR capture nor an AI extraction response")


def parse_import_data(
    text: str, filename: Optional[str] = None, mime_type: Optional[str] = None
) -> ParseResult:
    """Detect the format of statement data and parse it.

    Args:
        text: Decoded file contents or pasted text
        filename: Original file name, used for extension sniffing
        mime_type: Declared MIME type, if known

    Returns:
        ParseResult of the matching parser

    Raises:
        ParseError: If the format is unrecognized or the data is corrupt
    """
    suffix = _suffix(filename)
    mime = (mime_type or "").lower()

    if suffix == ".pdf" or mime == "application/pdf":
        raise ParseError(
            "PDF statements must be extracted to JSON first; import the extraction response instead"
        )
    if not text or not text.strip():
        raise ParseError("No data to import")

    stripped = text.lstrip("\ufeff \t\r\n")
    if suffix in (".qfx", ".ofx") or "ofx" in mime or looks_like_qfx(stripped):
        logger.debug("Detected QFX/OFX input")
        return parse_qfx(stripped)
    if suffix in (".har", ".json") or "json" in mime or stripped[:1] in ("{", "`"):
        logger.debug("Detected JSON input")
        return _parse_json(stripped)
    if looks_like_broker_statement(stripped):
        logger.debug("Detected broker statement CSV")
        return parse_broker_statement(stripped)
    logger.debug("Falling back to delimited text")
    return parse_delimited(stripped)


def decode_bytes(data: bytes) -> str:
    """Decode file bytes trying each supported encoding in turn.

    Raises:
        ParseError: If the bytes are a PDF or no supported encoding fits
    """
    if data.startswith(b"%PDF"):
        raise ParseError(
            "PDF statements must be extracted to JSON first; import the extraction response instead"
        )
    if b"\x00" in data[:4096]:
        raise ParseError("Unsupported encoding: binary or UTF-16 data")
    for encoding in ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ParseError("Unsupported encoding")


def parse_import_file(path: str | Path) -> ParseResult:
    """Read, decode and parse a statement file."""
    path = Path(path)
    return parse_import_data(decode_bytes(path.read_bytes()), filename=path.name)
