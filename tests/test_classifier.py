# ruff: noqa: E402, I001
import datetime as dt
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

import finflow.classifier as classifier_mod
from finflow.classifier import NullClassifier, OpenAIClassifier, build_classifier
from finflow.config import load_settings
from finflow.errors import ClassifierError
from finflow.models import Category, CategorySource, Confidence, Direction
from tests.helpers.openai_stub import OpenAIStub, verdict


class _HttpError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def test_classify_sends_closed_category_enum() -> None:
    calls: list[dict[str, Any]] = []
    clf = OpenAIClassifier(model="m", client=OpenAIStub(verdict("Travel"), calls))

    v = clf.classify("IRCTC", Decimal("820"), None, [Category.TRAVEL, Category.OTHERS])

    assert (v.category, v.confidence, v.reason) == (Category.TRAVEL, Confidence.HIGH, "stubbed")
    fmt = calls[0]["text"]["format"]
    assert fmt["type"] == "json_schema"
    assert fmt["schema"]["properties"]["category"]["enum"] == ["Travel", "Others"]
    assert '"date": null' in calls[0]["input"]


def test_classify_coerces_out_of_vocabulary_answers() -> None:
    stub = OpenAIStub(lambda _kw: {"category": "Groceries", "confidence": "very", "reason": ""})
    v = OpenAIClassifier(model="m", client=stub).classify("x", Decimal(1), None)
    assert v.category is Category.OTHERS
    assert v.confidence is Confidence.MEDIUM
    assert v.reason == "no reason"


def test_non_json_output_raises_classifier_error() -> None:
    class _Resp:
        output_text = "not json"

    class _Client:
        class responses:  # noqa: N801
            @staticmethod
            def create(**_kwargs: Any) -> _Resp:
                return _Resp()

    with pytest.raises(ClassifierError):
        OpenAIClassifier(model="m", client=_Client()).classify("x", Decimal(1), None)


def test_retries_429_once_then_succeeds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(classifier_mod.time, "sleep", lambda _s: None)
    attempts = {"n": 0}

    def respond(_kw: dict[str, Any]) -> dict[str, Any]:
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise _HttpError(429)
        return {"category": "Food", "confidence": "high", "reason": "ok"}

    v = OpenAIClassifier(model="m", client=OpenAIStub(respond)).classify("x", Decimal(1), None)
    assert v.category is Category.FOOD
    assert attempts["n"] == 2


def test_client_errors_are_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(classifier_mod.time, "sleep", lambda _s: None)
    attempts = {"n": 0}

    def respond(_kw: dict[str, Any]) -> dict[str, Any]:
        attempts["n"] += 1
        raise _HttpError(400)

    with pytest.raises(ClassifierError):
        OpenAIClassifier(model="m", client=OpenAIStub(respond)).classify("x", Decimal(1), None)
    assert attempts["n"] == 1


def test_extract_transactions_keeps_only_usable_items() -> None:
    payload = {
        "transactions": [
            {
                "date": "2024-04-03",
                "description": "  Big   Bazaar ",
                "amount": -1520.456,
                "direction": "debit",
                "category": "Shopping",
            },
            {
                "date": "03/04/2024",
                "description": "Salary",
                "amount": "50000",
                "direction": "credit",
                "category": "Income",
            },
            {"date": "garbage", "description": "x", "amount": 1, "category": "Food"},
            {"date": "2024-04-03", "description": "zero", "amount": 0, "category": "Food"},
            "not-a-mapping",
        ]
    }
    calls: list[dict[str, Any]] = []
    clf = OpenAIClassifier(model="m", client=OpenAIStub(lambda _kw: payload, calls))

    out = clf.extract_transactions("raw statement text")

    assert [t.description for t in out] == ["Big Bazaar", "Salary"]
    first, second = out
    assert first.amount == Decimal("1520.46")
    assert first.direction is Direction.DEBIT
    assert first.category is Category.SHOPPING
    assert first.category_source is CategorySource.CLASSIFIER
    assert second.date == dt.date(2024, 4, 3)
    assert second.direction is Direction.CREDIT
    assert second.category is Category.OTHERS
    assert "raw statement text" in calls[0]["input"]


def test_extract_without_array_raises() -> None:
    clf = OpenAIClassifier(model="m", client=OpenAIStub(lambda _kw: {"items": []}))
    with pytest.raises(ClassifierError):
        clf.extract_transactions("text")


def test_null_classifier() -> None:
    null = NullClassifier()
    assert null.enabled is False
    assert null.extract_transactions("anything") == []
    with pytest.raises(ClassifierError):
        null.classify("x", Decimal(1), None)


def test_build_classifier_follows_settings() -> None:
    base = {"DATABASE_URL": "sqlite://"}
    assert isinstance(build_classifier(load_settings(base)), NullClassifier)

    enabled = load_settings(
        {**base, "FINFLOW_CLASSIFIER_ENABLED": "true", "FINFLOW_CLASSIFIER_MODEL": "mini"}
    )
    clf = build_classifier(enabled, client=OpenAIStub(verdict("Food")))
    assert isinstance(clf, OpenAIClassifier)
    assert clf.classify("x", Decimal(1), None).category is Category.FOOD


def test_missing_api_key_surfaces_as_classifier_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    clf = build_classifier(
        load_settings({"DATABASE_URL": "sqlite://", "FINFLOW_CLASSIFIER_ENABLED": "1"})
    )
    assert isinstance(clf, OpenAIClassifier)
    with pytest.raises(ClassifierError, match="client unavailable"):
        clf.classify("x", Decimal(1), None)
    with pytest.raises(ClassifierError, match="client unavailable"):
        clf.extract_transactions("some statement text")


def test_extracted_non_finite_amounts_are_dropped() -> None:
    rows = [
        {"date": "2024-04-09", "description": "Big Bazaar", "amount": "NaN", "direction": "debit"},
        {"date": "2024-04-10", "description": "Metro", "amount": "Infinity", "direction": "debit"},
        {"date": "2024-04-11", "description": "Cafe", "amount": "120.5", "direction": "debit"},
    ]
    clf = OpenAIClassifier(model="m", client=OpenAIStub(lambda _kw: {"transactions": rows}))

    out = clf.extract_transactions("statement")

    assert [(t.description, t.amount) for t in out] == [("Cafe", Decimal("120.50"))]
