# ruff: noqa: E402, I001
import datetime as dt
import sys
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

from finflow.categorize import CategorizationEngine, categorize_heuristic
from finflow.classifier import ClassifierVerdict, OpenAIClassifier
from finflow.errors import ClassifierError
from finflow.models import Category, CategorySource, Confidence, Direction, ParsedTransaction
from tests.helpers.openai_stub import OpenAIStub, verdict


@pytest.mark.parametrize(
    ("description", "amount", "category", "confidence"),
    [
        # Payment apps win over every type rule.
        ("UPI/005030978101/P2M/BILLDESKPP@ybl/PhonePe", 299, Category.ONLINE_PAYMENTS, "high"),
        ("UPI/1/P2V/vendor@ybl/Tea Stall", 250, Category.FOOD, "medium"),
        ("UPI/1/P2V/vendor@ybl/Hardware Mart", 1000, Category.OTHERS, "medium"),
        ("UPI/1/P2V/vendor@ybl/Hardware Mart", "1234.50", Category.SHOPPING, "low"),
        ("UPI/1/P2M/netflix@icici/Netflix", 199, Category.BILLS, "high"),
        ("UPI/1/P2M/bescom@ybl/Electricity Bill", 1250, Category.BILLS, "high"),
        ("UPI/1/P2M/chai@ybl/Chai Point", 320, Category.FOOD, "medium"),
        ("UPI/1/P2M/store@ybl/Decathlon", 1500, Category.SHOPPING, "medium"),
        ("UPI/1/P2P/ravi@okaxis/Ravi", 250, Category.FOOD, "low"),
        ("UPI/1/P2P/ravi@okaxis/Ravi", 2000, Category.OTHERS, "low"),
        ("UPI/1/P2P/ravi@okaxis/Ravi", 999, Category.BILLS, "medium"),
        ("UPI/1/P2P/rides@okaxis/Uber India", 750, Category.TRAVEL, "medium"),
        ("UPI/1/P2P/ravi@okaxis/Ravi", 750, Category.OTHERS, "low"),
    ],
)
def test_structured_reference_rules(
    description: str, amount: Any, category: Category, confidence: str
) -> None:
    res = categorize_heuristic(description, amount)
    assert res.category is category
    assert res.confidence == confidence
    assert res.source is CategorySource.RULE


@pytest.mark.parametrize(
    ("description", "amount", "category", "confidence", "reason"),
    [
        ("Coffee House", 250, Category.FOOD, "high", "Matched keyword: coffee"),
        ("Uber trip Bangalore", 600, Category.TRAVEL, "high", "Matched keyword: uber"),
        # Declaration order: Bills is visited before Entertainment.
        ("NETFLIX.COM", 649, Category.BILLS, "high", "Matched keyword: netflix"),
        ("ZZZ", 100, Category.FOOD, "low", "Small amount"),
        ("ZZZ", 5000, Category.OTHERS, "low", "No matching keywords found"),
    ],
)
def test_plain_description_rules(
    description: str, amount: int, category: Category, confidence: str, reason: str
) -> None:
    res = categorize_heuristic(description, amount)
    assert (res.category, res.confidence, res.reason) == (category, confidence, reason)


def test_heuristic_is_total_for_bad_inputs() -> None:
    res = categorize_heuristic(None, "not-a-number")
    assert res.category is Category.FOOD
    assert res.confidence is Confidence.LOW
    assert categorize_heuristic("", Decimal("NaN")).category is Category.FOOD


class _FakeClassifier:
    name = "fake"

    def __init__(self, result: ClassifierVerdict | Exception) -> None:
        self._result = result
        self.calls: list[tuple[str, Decimal]] = []
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return True

    def classify(self, description, amount, date, categories=()):
        with self._lock:
            self.calls.append((description, amount))
        if isinstance(self._result, Exception):
            raise self._result
        return self._result

    def extract_transactions(self, text: str) -> list[ParsedTransaction]:
        return []


def test_only_low_confidence_results_are_refined() -> None:
    fake = _FakeClassifier(ClassifierVerdict(Category.SHOPPING, Confidence.HIGH, "retail"))
    engine = CategorizationEngine(fake)

    high = engine.categorize("Coffee House", 250)
    assert high.category is Category.FOOD
    assert fake.calls == []

    refined = engine.categorize("ZZZ", 5000, dt.date(2024, 4, 1))
    assert refined.category is Category.SHOPPING
    assert refined.confidence is Confidence.HIGH
    assert refined.source is CategorySource.CLASSIFIER
    assert refined.reason == "fake classifier: retail"
    assert fake.calls == [("ZZZ", Decimal("5000"))]


def test_low_verdict_keeps_heuristic() -> None:
    engine = CategorizationEngine(
        _FakeClassifier(ClassifierVerdict(Category.TRAVEL, Confidence.LOW, "unsure"))
    )
    res = engine.categorize("ZZZ", 5000)
    assert res.category is Category.OTHERS
    assert res.source is CategorySource.RULE


def test_classifier_failure_falls_back_to_heuristic() -> None:
    engine = CategorizationEngine(_FakeClassifier(ClassifierError("timeout")))
    res = engine.categorize("ZZZ", 100)
    assert (res.category, res.confidence) == (Category.FOOD, Confidence.LOW)


def test_disabled_engine_is_pure_heuristic() -> None:
    engine = CategorizationEngine()
    assert engine.classifier.enabled is False
    assert engine.categorize("ZZZ", 5000) == categorize_heuristic("ZZZ", 5000)


def _tx(description: str, amount: str, **kw: Any) -> ParsedTransaction:
    return ParsedTransaction(
        date=dt.date(2024, 4, 1),
        description=description,
        amount=Decimal(amount),
        direction=Direction.DEBIT,
        raw_merchant=description,
        **kw,
    )


def test_categorize_many_preserves_order_and_skips_precategorized() -> None:
    fake = _FakeClassifier(ClassifierVerdict(Category.ENTERTAINMENT, Confidence.MEDIUM, "x"))
    engine = CategorizationEngine(fake, concurrency=2)
    pre = _tx("Whatever", "10.00", category=Category.TRAVEL, confidence=Confidence.MEDIUM)
    items = [_tx("Coffee House", "250.00"), _tx("ZZZ", "5000.00"), pre, _tx("YYY", "900.00")]

    out = engine.categorize_many(items)

    assert [t.description for t in out] == ["Coffee House", "ZZZ", "Whatever", "YYY"]
    assert out[0].category is Category.FOOD
    assert out[0].category_source is CategorySource.RULE
    assert out[1].category is Category.ENTERTAINMENT
    assert out[1].category_source is CategorySource.CLASSIFIER
    assert out[2] is pre
    assert sorted(d for d, _ in fake.calls) == ["YYY", "ZZZ"]


def test_engine_with_openai_classifier_stub() -> None:
    calls: list[dict[str, Any]] = []
    stub = OpenAIStub(verdict("Entertainment", "medium", "cinema chain"), calls)
    engine = CategorizationEngine(OpenAIClassifier(model="test-model", client=stub))

    res = engine.categorize("PVR LTD", 5000, dt.date(2024, 4, 2))

    assert res.category is Category.ENTERTAINMENT
    assert res.reason == "openai classifier: cinema chain"
    assert len(calls) == 1
    assert calls[0]["model"] == "test-model"
    assert '"description": "PVR LTD"' in calls[0]["input"]
    assert '"date": "2024-04-02"' in calls[0]["input"]


def test_engine_rejects_bad_concurrency() -> None:
    with pytest.raises(ValueError):
        CategorizationEngine(concurrency=0)


def test_unexpected_classifier_error_falls_back_to_heuristic() -> None:
    engine = CategorizationEngine(_FakeClassifier(RuntimeError("bug in classifier")))

    res = engine.categorize("ZZZ", 100)
    assert (res.category, res.confidence) == (Category.FOOD, Confidence.LOW)
    assert res.source is CategorySource.RULE

    [tx] = engine.categorize_many([_tx("ZZZ", "5000")])
    assert tx.category is Category.OTHERS
    assert tx.category_source is CategorySource.RULE
