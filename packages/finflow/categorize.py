"""Transaction categorization decision procedure.

Public API:
    - :func:`categorize_heuristic` (pure, deterministic)
    - :class:`CategorizationEngine` (heuristic plus optional classifier refinement)

Decision order, first match wins:

1. Structured UPI reference: payment-app payees, then the transaction type
   (P2V / P2M) rules, then amount heuristics and payee-name keywords.
2. Plain descriptions: the description keyword table, then amount.
3. Refinement: only a ``low`` confidence result is sent to the classifier;
   a non-``low`` verdict replaces it, anything else keeps the heuristic.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .classifier import Classifier, NullClassifier
from .errors import ClassifierError
from .keywords import (
    BENEFICIARY_KEYWORDS,
    BILL_KEYWORDS,
    DESCRIPTION_KEYWORDS,
    PAYMENT_APP_KEYWORDS,
    SUBSCRIPTION_AMOUNTS,
    first_match,
)
from .logging_setup import get_logger
from .models import (
    ALL_CATEGORIES,
    CategorizationResult,
    Category,
    CategorySource,
    Confidence,
    ParsedTransaction,
)
from .pmap import p_map
from .references import ReferenceDescriptor, UpiTransactionType, parse_reference

# ---- Tunables (private) ------------------------------------------------------

_SMALL_AMOUNT = Decimal("500")
_ROUND_UNIT = Decimal("100")
_DEFAULT_CONCURRENCY: int = 4

_logger = get_logger("finflow.categorize")


def _as_decimal(amount: Any) -> Decimal:
    try:
        d = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    return d if d.is_finite() else Decimal(0)


def _is_round(amount: Decimal) -> bool:
    return amount >= _ROUND_UNIT and amount % _ROUND_UNIT == 0


def _is_subscription(amount: Decimal) -> bool:
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP)) in SUBSCRIPTION_AMOUNTS


def _result(category: Category, confidence: Confidence, reason: str) -> CategorizationResult:
    return CategorizationResult(category=category, confidence=confidence, reason=reason)


def _categorize_upi(
    ref: ReferenceDescriptor, amount: Decimal, lower_desc: str
) -> CategorizationResult:
    payee = (ref.beneficiary_name or "").lower()

    if any(app in payee or app in lower_desc for app in PAYMENT_APP_KEYWORDS):
        return _result(Category.ONLINE_PAYMENTS, Confidence.HIGH, "Detected payment app")

    if ref.transaction_type is UpiTransactionType.P2V:
        if amount < _SMALL_AMOUNT:
            return _result(Category.FOOD, Confidence.MEDIUM, "P2V transaction with small amount")
        if _is_round(amount):
            return _result(
                Category.OTHERS, Confidence.MEDIUM, "P2V transaction with round amount"
            )
        return _result(Category.SHOPPING, Confidence.LOW, "P2V transaction")

    if ref.transaction_type is UpiTransactionType.P2M:
        if _is_subscription(amount):
            return _result(
                Category.BILLS, Confidence.HIGH, "P2M transaction with subscription-like amount"
            )
        if any(k in payee or k in lower_desc for k in BILL_KEYWORDS):
            return _result(
                Category.BILLS, Confidence.HIGH, "P2M transaction with bill payment keyword"
            )
        if amount < _SMALL_AMOUNT:
            return _result(Category.FOOD, Confidence.MEDIUM, "P2M transaction with small amount")
        return _result(Category.SHOPPING, Confidence.MEDIUM, "P2M transaction")

    # P2P or unknown type.
    if amount < _SMALL_AMOUNT:
        return _result(Category.FOOD, Confidence.LOW, "Small amount")
    if _is_round(amount):
        return _result(Category.OTHERS, Confidence.LOW, "Round amount (likely transfer)")
    if _is_subscription(amount):
        return _result(Category.BILLS, Confidence.MEDIUM, "Exact subscription-like amount")
    hit = first_match(payee, BENEFICIARY_KEYWORDS)
    if hit is not None:
        return _result(hit[0], Confidence.MEDIUM, f"Matched beneficiary keyword: {hit[1]}")
    return _result(Category.OTHERS, Confidence.LOW, "Unable to categorize UPI transaction")


def categorize_heuristic(description: str | None, amount: Any) -> CategorizationResult:
    """Run the deterministic part of the decision procedure.

    Total for any input: unreadable amounts are treated as zero and a missing
    description as empty, so a category is always returned.
    """

    desc = description or ""
    value = _as_decimal(amount)
    ref = parse_reference(desc)
    if ref.is_structured:
        return _categorize_upi(ref, value, desc.lower())

    hit = first_match(desc, DESCRIPTION_KEYWORDS)
    if hit is not None:
        return _result(hit[0], Confidence.HIGH, f"Matched keyword: {hit[1]}")
    if value < _SMALL_AMOUNT:
        return _result(Category.FOOD, Confidence.LOW, "Small amount")
    return _result(Category.OTHERS, Confidence.LOW, "No matching keywords found")


class CategorizationEngine:
    """Heuristic categorization with optional external-classifier refinement.

    Parameters
    ----------
    classifier:
        Capability used for low-confidence refinement. Defaults to the disabled
        :class:`~finflow.classifier.NullClassifier`.
    concurrency:
        Maximum number of classifier calls in flight in :meth:`categorize_many`.
    categories:
        Closed category list offered to the classifier.
    """

    def __init__(
        self,
        classifier: Classifier | None = None,
        *,
        concurrency: int = _DEFAULT_CONCURRENCY,
        categories: Sequence[Category] = ALL_CATEGORIES,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._classifier: Classifier = classifier or NullClassifier()
        self._concurrency = concurrency
        self._categories = tuple(categories)

    @property
    def classifier(self) -> Classifier:
        return self._classifier

    def _refine(
        self,
        heuristic: CategorizationResult,
        description: str,
        amount: Decimal,
        date: dt.date | None,
    ) -> CategorizationResult:
        if heuristic.confidence is not Confidence.LOW or not self._classifier.enabled:
            return heuristic
        try:
            verdict = self._classifier.classify(description, amount, date, self._categories)
        except ClassifierError as e:
            _logger.info("categorize:refine_fallback error=%s", e)
            return heuristic
        except Exception as e:  # noqa: BLE001 - refinement never fails categorization
            _logger.warning(
                "categorize:refine_unexpected error=%s: %s", e.__class__.__name__, e
            )
            return heuristic
        if verdict.confidence is Confidence.LOW:
            return heuristic
        return CategorizationResult(
            category=verdict.category,
            confidence=verdict.confidence,
            reason=f"{self._classifier.name} classifier: {verdict.reason}",
            source=CategorySource.CLASSIFIER,
        )

    def categorize(
        self, description: str | None, amount: Any, date: dt.date | None = None
    ) -> CategorizationResult:
        """Categorize one transaction; never raises for classifier failures."""

        heuristic = categorize_heuristic(description, amount)
        return self._refine(heuristic, description or "", _as_decimal(amount), date)

    def categorize_many(self, items: Sequence[ParsedTransaction]) -> list[ParsedTransaction]:
        """Return ``items`` with category fields filled, preserving order.

        Items that already carry a category (e.g., from whole-document
        extraction) are returned unchanged. Classifier calls for low-confidence
        items run with bounded concurrency.
        """

        def _apply(tx: ParsedTransaction) -> ParsedTransaction:
            if tx.category is not None:
                return tx
            res = self.categorize(tx.description, tx.amount, tx.date)
            return dataclasses.replace(
                tx,
                category=res.category,
                confidence=res.confidence,
                reason=res.reason,
                category_source=res.source,
            )

        if not self._classifier.enabled:
            return [_apply(tx) for tx in items]
        out = p_map(
            items,
            _apply,
            concurrency=self._concurrency,
            thread_name_prefix="finflow-classify",
        )
        refined = sum(1 for tx in out if tx.category_source is CategorySource.CLASSIFIER)
        _logger.info("categorize:batch_done items=%d classifier_refined=%d", len(out), refined)
        return out


__all__ = ["CategorizationEngine", "categorize_heuristic"]
