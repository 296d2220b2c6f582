"""External classifier capability.

The categorization engine and the ingestion orchestrator depend only on the
:class:`Classifier` protocol. :class:`NullClassifier` is the disabled
implementation (the deterministic heuristic path); :class:`OpenAIClassifier`
calls the OpenAI Responses API with a strict JSON schema.

No side effects occur at import time: clients are created lazily on first use.
"""

from __future__ import annotations

import datetime as dt
import json
import random
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Protocol

from openai import OpenAI, OpenAIError
from openai.types.responses import ResponseTextConfigParam

from . import prompting
from .config import Settings
from .errors import ClassifierError
from .line_parser import DESCRIPTION_MAX_LEN, RAW_MERCHANT_MAX_LEN, parse_date
from .logging_setup import get_logger
from .models import (
    ALL_CATEGORIES,
    Category,
    CategorySource,
    Confidence,
    Direction,
    ParsedTransaction,
)

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 2
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_logger = get_logger("finflow.classifier")


@dataclass(frozen=True, slots=True)
class ClassifierVerdict:
    category: Category
    confidence: Confidence
    reason: str


class Classifier(Protocol):
    """Capability interface for the optional external classifier."""

    name: str

    @property
    def enabled(self) -> bool: ...

    def classify(
        self,
        description: str,
        amount: Decimal,
        date: dt.date | None,
        categories: Sequence[Category] = ALL_CATEGORIES,
    ) -> ClassifierVerdict: ...

    def extract_transactions(self, text: str) -> list[ParsedTransaction]: ...


class NullClassifier:
    """Disabled classifier: refinement and whole-document extraction are no-ops."""

    name = "disabled"

    @property
    def enabled(self) -> bool:
        return False

    def classify(
        self,
        description: str,
        amount: Decimal,
        date: dt.date | None,
        categories: Sequence[Category] = ALL_CATEGORIES,
    ) -> ClassifierVerdict:
        raise ClassifierError("classifier is disabled")

    def extract_transactions(self, text: str) -> list[ParsedTransaction]:
        return []


# ---- Response decoding -------------------------------------------------------


def _response_text(resp: Any) -> str:
    """Locate the text output of a Responses API result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                maybe = getattr(content[0], "text", None)
                if isinstance(maybe, str):
                    text = maybe
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ClassifierError("Unexpected Responses API shape; unable to locate text output")
    return text


def _decode_mapping(resp: Any) -> Mapping[str, Any]:
    try:
        decoded = json.loads(_response_text(resp))
    except json.JSONDecodeError as e:
        raise ClassifierError("Classifier output was not valid JSON") from e
    if not isinstance(decoded, Mapping):
        raise ClassifierError("Classifier output was not a JSON object")
    return decoded


def _coerce_category(raw: Any, allowed: Sequence[Category]) -> Category:
    for c in allowed:
        if isinstance(raw, str) and raw.strip().lower() == c.value.lower():
            return c
    return Category.OTHERS


def _coerce_confidence(raw: Any) -> Confidence:
    if isinstance(raw, str):
        try:
            return Confidence(raw.strip().lower())
        except ValueError:
            pass
    return Confidence.MEDIUM


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    base = _BACKOFF_SCHEDULE_SEC[min(attempt_no - 1, len(_BACKOFF_SCHEDULE_SEC) - 1)]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


# ---- OpenAI implementation ---------------------------------------------------


class OpenAIClassifier:
    """Classifier backed by the OpenAI Responses API.

    Parameters
    ----------
    model:
        Model name passed to ``responses.create``.
    timeout_sec:
        Per-request timeout handed to the SDK client. A timeout surfaces as
        :class:`~finflow.errors.ClassifierError`.
    client:
        Optional pre-built client (tests pass a stub). When omitted, an
        ``openai.OpenAI`` client is created on first use with SDK retries
        disabled; retries of 429/5xx are handled here.
    """

    name = "openai"

    def __init__(
        self,
        *,
        model: str,
        timeout_sec: float = 10.0,
        client: Any | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ) -> None:
        self._model = model
        self._timeout_sec = timeout_sec
        self._base_url = base_url
        self._api_key = api_key
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return True

    def _get_client(self) -> Any:
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = OpenAI(
                        api_key=self._api_key,
                        base_url=self._base_url,
                        timeout=self._timeout_sec,
                        max_retries=0,
                    )
                except OpenAIError as e:
                    _logger.warning("classifier:client_unavailable error=%s", e.__class__.__name__)
                    raise ClassifierError(f"OpenAI client unavailable: {e}") from e
            return self._client

    def _call(self, op: str, *, instructions: str, user_content: str, text_cfg: Any) -> Any:
        client = self._get_client()
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self._model,
                    instructions=instructions,
                    input=user_content,
                    text=text_cfg,
                )
                _logger.debug(
                    "classifier:%s_done latency_ms=%.2f",
                    op,
                    (time.perf_counter() - t0) * 1000.0,
                )
                return resp
            except Exception as e:  # noqa: BLE001 - SDK raises transport and API errors
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                    _logger.warning(
                        "classifier:%s_failed latency_ms=%.2f error=%s attempt=%d",
                        op,
                        dt_ms,
                        e.__class__.__name__,
                        attempt,
                    )
                    raise ClassifierError(f"{op} failed: {e.__class__.__name__}: {e}") from e
                _logger.info(
                    "classifier:%s_retry latency_ms=%.2f error=%s attempt=%d",
                    op,
                    dt_ms,
                    e.__class__.__name__,
                    attempt,
                )
                _sleep_backoff(attempt)
                attempt += 1

    def classify(
        self,
        description: str,
        amount: Decimal,
        date: dt.date | None,
        categories: Sequence[Category] = ALL_CATEGORIES,
    ) -> ClassifierVerdict:
        names = [c.value for c in categories]
        resp = self._call(
            "classify",
            instructions=prompting.build_classify_instructions(),
            user_content=prompting.build_classify_input(description, amount, date, names),
            text_cfg=ResponseTextConfigParam(format=prompting.build_classify_format(names)),
        )
        decoded = _decode_mapping(resp)
        reason = decoded.get("reason")
        return ClassifierVerdict(
            category=_coerce_category(decoded.get("category"), categories),
            confidence=_coerce_confidence(decoded.get("confidence")),
            reason=reason.strip() if isinstance(reason, str) and reason.strip() else "no reason",
        )

    def extract_transactions(self, text: str) -> list[ParsedTransaction]:
        names = [c.value for c in ALL_CATEGORIES]
        resp = self._call(
            "extract",
            instructions=prompting.build_extract_instructions(),
            user_content=prompting.build_extract_input(text, names),
            text_cfg=ResponseTextConfigParam(format=prompting.build_extract_format(names)),
        )
        items = _decode_mapping(resp).get("transactions")
        if not isinstance(items, list):
            raise ClassifierError("Classifier output is missing a 'transactions' array")

        out: list[ParsedTransaction] = []
        for item in items:
            parsed = _extracted_item(item)
            if parsed is not None:
                out.append(parsed)
        _logger.info("classifier:extract_done returned=%d usable=%d", len(items), len(out))
        return out


def _extracted_item(item: Any) -> ParsedTransaction | None:
    if not isinstance(item, Mapping):
        return None
    when = parse_date(str(item.get("date") or ""))
    description = " ".join(str(item.get("description") or "").split())
    try:
        amount = abs(Decimal(str(item.get("amount")))).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    except (InvalidOperation, ValueError):
        return None
    if when is None or not description or not amount.is_finite() or amount == 0:
        return None
    raw_direction = str(item.get("direction") or item.get("type") or "").lower()
    direction = Direction.CREDIT if raw_direction.startswith("cr") else Direction.DEBIT
    description = description[:DESCRIPTION_MAX_LEN]
    return ParsedTransaction(
        date=when,
        description=description,
        amount=amount,
        direction=direction,
        raw_merchant=description[:RAW_MERCHANT_MAX_LEN],
        category=_coerce_category(item.get("category"), ALL_CATEGORIES),
        confidence=Confidence.MEDIUM,
        reason="Extracted by external classifier",
        category_source=CategorySource.CLASSIFIER,
    )


def build_classifier(settings: Settings, *, client: Any | None = None) -> Classifier:
    """Select the classifier implementation for ``settings``."""

    if not settings.classifier_enabled:
        return NullClassifier()
    return OpenAIClassifier(
        model=settings.classifier_model,
        timeout_sec=settings.classifier_timeout_sec,
        client=client,
        base_url=settings.classifier_base_url,
        api_key=settings.openai_api_key,
    )


__all__ = [
    "Classifier",
    "ClassifierVerdict",
    "NullClassifier",
    "OpenAIClassifier",
    "build_classifier",
]
