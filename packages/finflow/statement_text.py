"""Raw text extraction from statement PDFs via ``pdfplumber``."""

from __future__ import annotations

import io

import pdfplumber

from .errors import ExtractionError
from .logging_setup import get_logger

_logger = get_logger("finflow.statement_text")


def extract_statement_text(data: bytes, password: str | None = None) -> str:
    """Return the text of every page in ``data``, pages joined by newlines.

    Raises
    ------
    ExtractionError
        The buffer is empty, is not a readable PDF, or the password is wrong.
    """

    if not data:
        raise ExtractionError("Statement file is empty")

    pages: list[str] = []
    try:
        with pdfplumber.open(io.BytesIO(data), password=password or "") as pdf:
            for page in pdf.pages:
                text = page.extract_text()
                if text:
                    pages.append(text)
            page_count = len(pdf.pages)
    except Exception as e:  # noqa: BLE001 - pdfminer raises a wide variety of types
        msg = _describe_failure(e, password_given=bool(password))
        _logger.warning("statement_text:extract_failed error=%s", e.__class__.__name__)
        raise ExtractionError(msg) from e

    _logger.debug("statement_text:extracted pages=%d text_pages=%d", page_count, len(pages))
    return "\n".join(pages)


def _failure_chain(exc: BaseException) -> list[BaseException]:
    # pdfplumber wraps pdfminer errors; the password error sits in args or __cause__.
    seen: list[BaseException] = []
    pending: list[BaseException] = [exc]
    while pending:
        cur = pending.pop()
        if any(cur is s for s in seen):
            continue
        seen.append(cur)
        pending.extend(a for a in cur.args if isinstance(a, BaseException))
        pending.extend(c for c in (cur.__cause__, cur.__context__) if c is not None)
    return seen


def _describe_failure(exc: BaseException, *, password_given: bool) -> str:
    for cur in _failure_chain(exc):
        text = f"{cur.__class__.__name__} {cur}".lower()
        if "password" in text or "encrypt" in text:
            if password_given:
                return "Incorrect password for encrypted statement"
            return "Statement is password protected; a password is required"
    return f"Could not read statement PDF: {exc.__class__.__name__}"


__all__ = ["extract_statement_text"]
