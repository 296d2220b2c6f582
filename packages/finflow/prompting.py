"""Prompt construction for the external transaction classifier.

This module builds:
- The system instructions and user payload for single-transaction
  categorization and for whole-document transaction extraction.
- The strict ``text.format`` (JSON Schema) objects for the OpenAI Responses
  API, with the category enum closed over the caller's category list.
"""

from __future__ import annotations

import datetime as dt
import json
from collections.abc import Sequence
from decimal import Decimal

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

# Only the head of a statement is sent for whole-document extraction.
EXTRACT_TEXT_LIMIT: int = 8000

CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low")


def build_classify_instructions() -> str:
    return (
        "You categorize personal bank transactions. Choose exactly one category from the "
        "provided list. Never invent categories. Report your confidence as high, medium or "
        "low and give a one-sentence reason. Output JSON only that conforms to the schema."
    )


def build_classify_input(
    description: str,
    amount: Decimal,
    date: dt.date | None,
    categories: Sequence[str],
) -> str:
    """Embed the transaction as a small JSON object after the category list."""

    payload = {
        "description": description,
        "amount": f"{amount:.2f}",
        "date": date.isoformat() if date is not None else None,
    }
    return (
        f"Allowed categories: {', '.join(categories)}\n"
        "Transaction:\n"
        f"{json.dumps(payload, ensure_ascii=False)}"
    )


def build_classify_format(categories: Sequence[str]) -> ResponseFormatTextJSONSchemaConfigParam:
    codes = [c for c in categories if c and c.strip()]
    if not codes:
        raise ValueError("categories must contain at least one non-blank value")
    return {
        "type": "json_schema",
        "name": "transaction_category",
        "schema": {
            "type": "object",
            "properties": {
                "category": {"type": "string", "enum": codes},
                "confidence": {"type": "string", "enum": list(CONFIDENCE_LEVELS)},
                "reason": {"type": "string"},
            },
            "required": ["category", "confidence", "reason"],
            "additionalProperties": False,
        },
        "strict": True,
    }


def build_extract_instructions() -> str:
    return (
        "You extract transactions from raw bank statement text. Return every transaction "
        "row you can identify; skip headers, totals and running balances. Dates must be "
        "YYYY-MM-DD, amounts positive numbers, and direction debit for money out or credit "
        "for money in. Output JSON only that conforms to the schema."
    )


def build_extract_input(text: str, categories: Sequence[str]) -> str:
    head = (text or "")[:EXTRACT_TEXT_LIMIT]
    return (
        f"Allowed categories: {', '.join(categories)}\n"
        "BEGIN_STATEMENT_TEXT\n"
        f"{head}\n"
        "END_STATEMENT_TEXT"
    )


def build_extract_format(categories: Sequence[str]) -> ResponseFormatTextJSONSchemaConfigParam:
    codes = [c for c in categories if c and c.strip()]
    if not codes:
        raise ValueError("categories must contain at least one non-blank value")
    return {
        "type": "json_schema",
        "name": "statement_transactions",
        "schema": {
            "type": "object",
            "properties": {
                "transactions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "date": {"type": "string"},
                            "description": {"type": "string"},
                            "amount": {"type": "number"},
                            "direction": {"type": "string", "enum": ["debit", "credit"]},
                            "category": {"type": "string", "enum": codes},
                        },
                        "required": ["date", "description", "amount", "direction", "category"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["transactions"],
            "additionalProperties": False,
        },
        "strict": True,
    }


__all__ = [
    "EXTRACT_TEXT_LIMIT",
    "build_classify_format",
    "build_classify_input",
    "build_classify_instructions",
    "build_extract_format",
    "build_extract_input",
    "build_extract_instructions",
]
