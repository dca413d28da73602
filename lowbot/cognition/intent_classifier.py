from __future__ import annotations

import asyncio
import inspect
import os
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, runtime_checkable

import requests

from lowbot.agent.errors import LowBotError, ServiceUnavailable, UnresolvableIntent
from lowbot.cognition.envelope import ClassifiedIntent
from lowbot.observability.log_manager import get_component_logger

logger = get_component_logger("cognition.intent_classifier")

UNKNOWN_INTENT = "unknown"
PATTERN_SCORE = 0.9
EXAMPLE_EXACT_SCORE = 1.0
EXAMPLE_CONTAINED_SCORE = 0.8
OVERLAP_WEIGHT = 0.7


@dataclass(frozen=True)
class IntentSpec:
    intent_name: str
    patterns: tuple[str, ...] = field(default_factory=tuple)
    examples: tuple[str, ...] = field(default_factory=tuple)


@runtime_checkable
class IntentClassifier(Protocol):
    """Constructed as ``cls(intents, min_score)``."""

    async def classify(self, text: str) -> ClassifiedIntent:
        ...


def ensure_classifier(classifier: object) -> IntentClassifier:
    classify = getattr(classifier, "classify", None)
    if not callable(classify) or not inspect.iscoroutinefunction(classify):
        raise TypeError(f"{type(classifier).__name__} must define async classify(text)")
    return classifier  # type: ignore[return-value]


async def detect_intent(classifier: IntentClassifier, text: str, *, min_score: float) -> ClassifiedIntent:
    try:
        result = await classifier.classify(text)
    except LowBotError:
        raise
    except Exception as exc:
        raise ServiceUnavailable(f"Intent classifier failed: {exc}") from exc
    if not isinstance(result, ClassifiedIntent):
        raise ServiceUnavailable(f"Intent classifier returned {type(result).__name__}")
    if not result.resolved(min_score):
        raise UnresolvableIntent(
            f"Intent {result.intent_name!r} scored {result.score:.2f} (min {min_score:.2f})",
            intent=result.intent_name,
            score=result.score,
        )
    return result


class PatternIntentClassifier:
    """Offline classifier scoring regex patterns and example utterances.

    ``min_score`` is part of the classifier factory signature; the threshold
    itself is applied by ``detect_intent``.
    """

    def __init__(self, intents: Iterable[IntentSpec], min_score: float) -> None:
        self._intents = tuple(intents)
        self._compiled = {
            spec.intent_name: [re.compile(_strip_diacritics(p), re.IGNORECASE) for p in spec.patterns]
            for spec in self._intents
        }

    async def classify(self, text: str) -> ClassifiedIntent:
        normalized = _normalize_text(text)
        if not normalized:
            return ClassifiedIntent(UNKNOWN_INTENT, 0.0)
        best = ClassifiedIntent(UNKNOWN_INTENT, 0.0)
        for spec in self._intents:
            score = self._score(spec, normalized)
            if score > best.score:
                best = ClassifiedIntent(spec.intent_name, score)
        return best

    def _score(self, spec: IntentSpec, normalized: str) -> float:
        if any(pattern.search(normalized) for pattern in self._compiled[spec.intent_name]):
            return PATTERN_SCORE
        score = 0.0
        tokens = set(normalized.split())
        for example in spec.examples:
            candidate = _normalize_text(example)
            if not candidate:
                continue
            if candidate == normalized:
                return EXAMPLE_EXACT_SCORE
            if _example_in_text(normalized, candidate):
                score = max(score, EXAMPLE_CONTAINED_SCORE)
                continue
            example_tokens = set(candidate.split())
            overlap = len(tokens & example_tokens) / len(tokens | example_tokens)
            score = max(score, round(overlap * OVERLAP_WEIGHT, 4))
        return score


class RemoteIntentClassifier:
    """Scores text against a remote backend: POST {"text", "intents"} -> {"intent_name", "score"}."""

    def __init__(
        self,
        intents: Iterable[IntentSpec],
        min_score: float,
        *,
        url: str | None = None,
        timeout_sec: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self._intents = tuple(intents)
        self._min_score = float(min_score)
        self._url = url or os.getenv("LOWBOT_CLASSIFIER_URL") or ""
        self._timeout_sec = timeout_sec
        self._session = session or requests.Session()

    async def classify(self, text: str) -> ClassifiedIntent:
        if not self._url:
            raise ServiceUnavailable("Remote intent classifier has no URL configured")
        payload = await asyncio.to_thread(self._post, text)
        return _parse_scoring_payload(payload)

    def _post(self, text: str) -> Any:
        body = {
            "text": text,
            "intents": [spec.intent_name for spec in self._intents],
            "min_score": self._min_score,
        }
        try:
            response = self._session.post(self._url, json=body, timeout=self._timeout_sec)
            response.raise_for_status()
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise ServiceUnavailable(f"Scoring backend unreachable: {exc}") from exc
        except requests.HTTPError as exc:
            raise ServiceUnavailable(f"Scoring backend error: {exc}") from exc
        try:
            return response.json()
        except ValueError:
            logger.warning("RemoteIntentClassifier non-json response url=%s", self._url)
            return None


def _parse_scoring_payload(payload: Any) -> ClassifiedIntent:
    if not isinstance(payload, dict):
        return ClassifiedIntent(UNKNOWN_INTENT, 0.0)
    intent_name = payload.get("intent_name") or payload.get("intentName") or UNKNOWN_INTENT
    score = payload.get("score")
    if score is None:
        score = payload.get("confidence")
    return ClassifiedIntent(str(intent_name), score if score is not None else 0.0)


def _normalize_text(text: str) -> str:
    return _strip_diacritics(" ".join(str(text or "").strip().lower().split()))


def _strip_diacritics(text: str) -> str:
    return "".join(
        char for char in unicodedata.normalize("NFKD", text) if not unicodedata.combining(char)
    )


def _example_in_text(text: str, example: str) -> bool:
    if " " not in example:
        return re.search(r"\b" + re.escape(example) + r"\b", text) is not None
    return example in text
