"""Test helpers to stub the OpenAI Responses client used by classifier.py.

The stub records each ``responses.create`` call and answers with a
deterministic JSON payload computed by a test-provided callable, so tests
exercise the real request building and response decoding paths.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape for ``classifier.py``.

    Parameters
    ----------
    respond:
        Receives the ``create`` kwargs and returns the decoded payload (a dict
        that is JSON-encoded into ``output_text``). It may raise to simulate
        transport errors.
    calls_out:
        A list that will be appended with each call's kwargs to allow tests to
        make lightweight assertions about prompts or schema.
    """

    def __init__(
        self,
        respond: Callable[[dict[str, Any]], dict[str, Any]],
        calls_out: list[dict[str, Any]] | None = None,
    ) -> None:
        self._respond = respond
        self._calls = calls_out if calls_out is not None else []

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs):
                self._outer._calls.append(kwargs)
                payload = self._outer._respond(kwargs)

                class _Resp:
                    output_text: str

                resp = _Resp()
                resp.output_text = json.dumps(payload)
                return resp

        self.responses = _Responses(self)

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self._calls


def verdict(category: str, confidence: str = "high", reason: str = "stubbed"):
    """Return a ``respond`` callable that always answers with one verdict."""

    def _respond(_kwargs: dict[str, Any]) -> dict[str, Any]:
        return {"category": category, "confidence": confidence, "reason": reason}

    return _respond
