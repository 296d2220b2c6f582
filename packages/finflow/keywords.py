"""Static keyword tables used by the categorization engine.

Tables are read-only ordered mappings built once at import. Declaration order
is significant: lookups walk categories top to bottom and the first hit wins,
so overlapping keywords (``gas``, ``netflix``) resolve deterministically.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import TypeAlias

from .models import Category

KeywordTable: TypeAlias = Mapping[Category, tuple[str, ...]]

# Descriptions without a structured payment reference.
DESCRIPTION_KEYWORDS: KeywordTable = MappingProxyType(
    {
        Category.FOOD: (
            "restaurant",
            "cafe",
            "coffee",
            "pizza",
            "burger",
            "food",
            "dining",
            "zomato",
            "swiggy",
            "uber eats",
            "grocery",
            "supermarket",
        ),
        Category.TRAVEL: (
            "uber",
            "lyft",
            "taxi",
            "cab",
            "airline",
            "flight",
            "hotel",
            "train",
            "bus",
            "metro",
            "parking",
            "gas",
            "petrol",
            "fuel",
        ),
        Category.SHOPPING: (
            "amazon",
            "ebay",
            "walmart",
            "target",
            "best buy",
            "shop",
            "store",
            "purchase",
            "order",
        ),
        Category.BILLS: (
            "electric",
            "electricity",
            "water",
            "gas bill",
            "internet",
            "wifi",
            "phone",
            "mobile",
            "utility",
            "insurance",
            "rent",
            "mortgage",
            "loan",
            "emi",
            "subscription",
            "netflix",
            "spotify",
            "hulu",
            "disney",
            "prime",
        ),
        Category.ENTERTAINMENT: (
            "movie",
            "cinema",
            "theater",
            "concert",
            "ticket",
            "game",
            "gaming",
            "spotify",
            "netflix",
            "youtube",
            "gym",
            "fitness",
        ),
        Category.ONLINE_PAYMENTS: (
            "phonepe",
            "paytm",
            "googlepay",
            "goog",
            "phon",
            "google pay",
            "amazon pay",
        ),
    }
)

# UPI payee names (checked after the amount heuristics).
BENEFICIARY_KEYWORDS: KeywordTable = MappingProxyType(
    {
        Category.FOOD: (
            "restaurant",
            "cafe",
            "food",
            "zomato",
            "swiggy",
            "uber eats",
            "pizza",
            "burger",
        ),
        Category.TRAVEL: ("uber", "ola", "taxi", "cab", "train", "bus", "metro"),
        Category.SHOPPING: ("amazon", "flipkart", "myntra", "shop", "store"),
        Category.BILLS: (
            "bill",
            "recharge",
            "electricity",
            "water",
            "gas",
            "internet",
            "phone",
            "mobile",
        ),
        Category.ENTERTAINMENT: ("movie", "cinema", "netflix", "spotify", "prime", "disney"),
    }
)

PAYMENT_APP_KEYWORDS: tuple[str, ...] = (
    "phonepe",
    "phon",
    "googlepay",
    "goog",
    "paytm",
    "amazonpay",
)

BILL_KEYWORDS: tuple[str, ...] = ("billdesk", "bill", "payment", "recharge")

SUBSCRIPTION_AMOUNTS: frozenset[int] = frozenset(
    {99, 149, 199, 249, 299, 349, 399, 449, 499, 599, 699, 799, 899, 999}
)


def first_match(text: str, table: KeywordTable) -> tuple[Category, str] | None:
    """Return ``(category, keyword)`` for the first keyword found in ``text``.

    Matching is a case-insensitive substring test; categories are visited in
    declaration order and keywords in listed order.
    """

    lowered = text.lower()
    for category, words in table.items():
        for word in words:
            if word in lowered:
                return category, word
    return None


__all__ = [
    "BENEFICIARY_KEYWORDS",
    "BILL_KEYWORDS",
    "DESCRIPTION_KEYWORDS",
    "KeywordTable",
    "PAYMENT_APP_KEYWORDS",
    "SUBSCRIPTION_AMOUNTS",
    "first_match",
]
