"""Structured payment-reference (UPI) extraction from transaction descriptions.

Indian bank statements embed the UPI payment descriptor in the narration, e.g.
``UPI/005030978101/P2M/BILLDESKPP@ybl/PhonePe``: reference id, transaction
type (person-to-vendor, -merchant, -person), the payee VPA and the payee name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum


class UpiTransactionType(StrEnum):
    P2V = "P2V"
    P2M = "P2M"
    P2P = "P2P"


_UPI_RE = re.compile(
    r"UPI/(?P<ref>[^/]+)/(?P<kind>P2[VMP])/(?P<payee>[^/]+)@(?P<bank>[^/]+)/(?P<name>.+)",
    re.IGNORECASE,
)
_UPI_KEYWORD_RE = re.compile(r"\bUPI\b", re.IGNORECASE)
# Searched in this order when the descriptor is malformed.
_TYPE_SEARCH: tuple[tuple[UpiTransactionType, re.Pattern[str]], ...] = tuple(
    (t, re.compile(t.value, re.IGNORECASE)) for t in UpiTransactionType
)


@dataclass(frozen=True, slots=True)
class ReferenceDescriptor:
    is_structured: bool
    ref_id: str | None = None
    beneficiary_id: str | None = None
    bank_handle: str | None = None
    beneficiary_name: str | None = None
    transaction_type: UpiTransactionType | None = None


NOT_STRUCTURED = ReferenceDescriptor(is_structured=False)


def _fallback_name(description: str) -> str | None:
    last = description.split("/")[-1].strip()
    if len(last) > 2:
        return last
    at = description.find("@")
    if at != -1:
        after_at = description[at + 1 :]
        slash = after_at.find("/")
        if slash != -1:
            return after_at[slash + 1 :].strip() or None
    return None


def _fallback_type(description: str) -> UpiTransactionType | None:
    for kind, pattern in _TYPE_SEARCH:
        if pattern.search(description):
            return kind
    return None


def parse_reference(description: str | None) -> ReferenceDescriptor:
    """Return the UPI descriptor embedded in ``description``.

    The full ``UPI/<ref>/<type>/<payee>@<bank>/<name>`` form yields every
    field. A description that merely mentions ``UPI`` still counts as
    structured, with the type and payee name recovered by weaker searches.
    Anything else is reported with ``is_structured=False``.
    """

    text = description or ""
    m = _UPI_RE.search(text)
    if m is not None:
        return ReferenceDescriptor(
            is_structured=True,
            ref_id=m.group("ref").strip(),
            beneficiary_id=m.group("payee").strip().lower(),
            bank_handle=m.group("bank").strip().lower(),
            beneficiary_name=m.group("name").strip(),
            transaction_type=UpiTransactionType(m.group("kind").upper()),
        )
    if _UPI_KEYWORD_RE.search(text):
        return ReferenceDescriptor(
            is_structured=True,
            beneficiary_name=_fallback_name(text),
            transaction_type=_fallback_type(text),
        )
    return NOT_STRUCTURED


__all__ = [
    "NOT_STRUCTURED",
    "ReferenceDescriptor",
    "UpiTransactionType",
    "parse_reference",
]
