"""Heuristic transaction recovery from extracted statement text.

Statement PDFs flatten into one line per row with wildly different column
orders, so this module does not attempt a grammar. A line is a candidate when
it holds a ``D/M/Y`` date token; the amount, direction and description are
then recovered from the numeric and ``CR``/``DR`` tokens around it. Lines that
cannot be read are skipped without raising: one bad line never aborts a pass.

Public API:
    - :func:`parse_statement`
    - :func:`parse_line`
    - :func:`scan_line`
    - :func:`parse_date`
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .logging_setup import get_logger
from .models import Direction, ParsedTransaction

_logger = get_logger("finflow.line_parser")

# ---- Tunables (private) ------------------------------------------------------

DESCRIPTION_MAX_LEN: int = 200
RAW_MERCHANT_MAX_LEN: int = 100
_EMPTY_DESCRIPTION = "Unspecified transaction"

_DATE_TOKEN_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2,4})")
# Numbers glued to "/" or "@" are reference ids (UPI refs, VPAs) or date parts,
# never amounts.
_AMOUNT_TOKEN_RE = re.compile(
    r"(?<![\w/@])(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)(?![\w/@])"
)
_TYPE_TOKEN_RE = re.compile(r"\b(CR|DR|DEBIT|CREDIT)\b", re.IGNORECASE)
_LEADING_NUMBER_RE = re.compile(r"^\d[\d,]*(?:\.\d+)?\s*")
_WS_RE = re.compile(r"\s+")

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DMY_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
_DAY_MON_YEAR_RE = re.compile(r"^(\d{1,2})[-\s]([A-Za-z]{3})[A-Za-z]*[-\s](\d{2,4})$")
_MONTHS: dict[str, int] = {
    m: i
    for i, m in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

_DEBIT_HINTS: tuple[str, ...] = ("withdraw", "purchase", "payment", "debit")
_CREDIT_HINTS: tuple[str, ...] = ("deposit", "refund", "credit")
_CREDIT_TYPES = frozenset({"CR", "CREDIT"})


@dataclass(frozen=True, slots=True)
class Token:
    text: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class CandidateLine:
    """One statement line with the offsets of its date, numeric and type tokens."""

    line: str
    date: Token
    amounts: tuple[Token, ...]
    type_indicator: Token | None


# ---- Dates -------------------------------------------------------------------


def _expand_year(raw: str) -> int:
    year = int(raw)
    return 2000 + year if len(raw) <= 2 else year


def _safe_date(year: int, month: int, day: int) -> dt.date | None:
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def _parse_day_month_year(a: int, b: int, year: int) -> dt.date | None:
    # A first component above 12 can only be a day. Otherwise day-first is
    # preferred, with month-first as the fallback when day-first is invalid.
    if a > 12:
        return _safe_date(year, b, a)
    return _safe_date(year, b, a) or _safe_date(year, a, b)


def parse_date(value: str) -> dt.date | None:
    """Parse a statement date token; return ``None`` when it cannot be read.

    Accepted shapes, in order: ``DD/MM/YYYY`` (two-digit years map to 20xx),
    ``YYYY-MM-DD``, ``DD-Mon-YYYY`` and finally anything
    :meth:`datetime.datetime.fromisoformat` understands.
    """

    s = (value or "").strip()
    if not s:
        return None

    m = _DMY_SLASH_RE.match(s)
    if m:
        return _parse_day_month_year(int(m.group(1)), int(m.group(2)), _expand_year(m.group(3)))

    m = _ISO_DATE_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _DAY_MON_YEAR_RE.match(s)
    if m:
        month = _MONTHS.get(m.group(2).lower())
        if month is None:
            return None
        return _safe_date(_expand_year(m.group(3)), month, int(m.group(1)))

    try:
        return dt.datetime.fromisoformat(s).date()
    except ValueError:
        return None


# ---- Line scanning -----------------------------------------------------------


def _to_amount(token: str) -> Decimal | None:
    try:
        d = Decimal(token.replace(",", ""))
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def scan_line(line: str) -> CandidateLine | None:
    """Locate the date, numeric and type tokens of ``line``.

    Returns ``None`` when the line has no ``D/M/Y`` date token.
    """

    dm = _DATE_TOKEN_RE.search(line)
    if dm is None:
        return None
    amounts = tuple(
        Token(m.group(1), m.start(1), m.end(1))
        for m in _AMOUNT_TOKEN_RE.finditer(line)
        # Skip anything overlapping the date token itself.
        if m.end(1) <= dm.start() or m.start(1) >= dm.end()
    )
    tm = _TYPE_TOKEN_RE.search(line)
    type_tok = Token(tm.group(1), tm.start(1), tm.end(1)) if tm else None
    return CandidateLine(
        line=line,
        date=Token(dm.group(0), dm.start(), dm.end()),
        amounts=amounts,
        type_indicator=type_tok,
    )


def _pick_amount(cand: CandidateLine) -> Token | None:
    if cand.type_indicator is not None:
        before = [a for a in cand.amounts if a.end <= cand.type_indicator.start]
        if before:
            return before[-1]
    after_date = [a for a in cand.amounts if a.start >= cand.date.end]
    if after_date:
        return after_date[0]
    return cand.amounts[0] if cand.amounts else None


def _direction(cand: CandidateLine) -> Direction:
    if cand.type_indicator is not None:
        if cand.type_indicator.text.upper() in _CREDIT_TYPES:
            return Direction.CREDIT
        return Direction.DEBIT
    lower = cand.line.lower()
    if any(h in lower for h in _DEBIT_HINTS):
        return Direction.DEBIT
    if any(h in lower for h in _CREDIT_HINTS):
        return Direction.CREDIT
    return Direction.DEBIT


def _balance_token(cand: CandidateLine, amount_tok: Token, amount: Decimal) -> Token | None:
    # A running balance usually trails the transaction amount: the first later
    # numeric token whose value differs from it.
    for tok in cand.amounts:
        if tok.start <= amount_tok.start:
            continue
        if _to_amount(tok.text) == amount:
            continue
        return tok
    return None


def _describe(cand: CandidateLine, amount_tok: Token, amount: Decimal) -> str:
    start = amount_tok.end
    if cand.type_indicator is not None:
        start = max(start, cand.type_indicator.end)
    description = _collapse(cand.line[start:])

    balance = _balance_token(cand, amount_tok, amount)
    if balance is not None and balance.text in description:
        description = _collapse(description.replace(balance.text, "", 1))

    description = _LEADING_NUMBER_RE.sub("", description).strip()
    if description:
        return description

    # Whole line minus the consumed tokens, cut by offset so equal substrings
    # elsewhere in the line survive.
    consumed = [cand.date, amount_tok]
    if cand.type_indicator is not None:
        consumed.append(cand.type_indicator)
    if balance is not None:
        consumed.append(balance)
    fallback = cand.line
    for tok in sorted(consumed, key=lambda t: t.start, reverse=True):
        fallback = fallback[: tok.start] + " " + fallback[tok.end :]
    return _collapse(fallback) or _EMPTY_DESCRIPTION


def parse_line(line: str) -> ParsedTransaction | None:
    """Parse one statement line; ``None`` when it is not a readable transaction."""

    stripped = line.strip()
    if not stripped:
        return None
    cand = scan_line(stripped)
    if cand is None:
        return None

    when = parse_date(cand.date.text)
    if when is None:
        return None

    amount_tok = _pick_amount(cand)
    if amount_tok is None:
        return None
    amount = _to_amount(amount_tok.text)
    if amount is None or amount == 0:
        return None

    description = _describe(cand, amount_tok, amount)[:DESCRIPTION_MAX_LEN]
    return ParsedTransaction(
        date=when,
        description=description,
        amount=amount,
        direction=_direction(cand),
        raw_merchant=description[:RAW_MERCHANT_MAX_LEN],
    )


def parse_statement(text: str) -> list[ParsedTransaction]:
    """Return every transaction recoverable from ``text``, in statement order."""

    out: list[ParsedTransaction] = []
    lines = 0
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        lines += 1
        parsed = parse_line(line)
        if parsed is not None:
            out.append(parsed)
    _logger.debug("line_parser:parsed lines=%d transactions=%d", lines, len(out))
    return out


__all__ = [
    "CandidateLine",
    "DESCRIPTION_MAX_LEN",
    "RAW_MERCHANT_MAX_LEN",
    "Token",
    "parse_date",
    "parse_line",
    "parse_statement",
    "scan_line",
]
