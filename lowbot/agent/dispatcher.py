"""Per-message pipeline: classify, match, handle, format, deliver, log.

Each inbound utterance runs through one ``dispatch`` call. Stages execute
strictly in order; classification, the skill handler and delivery are the
only suspension points and each is bounded by the per-stage deadline. Any
failure moves the dispatch to ``recovering`` and then ``done``: nothing but
cancellation escapes ``dispatch``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Literal, Mapping, TypeVar

from lowbot.agent.errors import (
    DispatchTimeout,
    ErrorKind,
    UnknownAdapter,
    UnprocessableSkillResponse,
    UnresolvableIntent,
)
from lowbot.agent.recovery import recover
from lowbot.cognition.envelope import ClassifiedIntent, SlotExtractor, build_envelope
from lowbot.cognition.intent_classifier import IntentClassifier, detect_intent
from lowbot.cognition.skills.registry import SkillRegistry
from lowbot.io.adapters import ConnectedAdapter
from lowbot.io.contracts import Utterance
from lowbot.observability.log_manager import get_component_logger
from lowbot.rendering.formatter import OutputFormatter

logger = get_component_logger("agent.dispatcher")

T = TypeVar("T")


class DispatchState(str, Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    MATCHING = "matching"
    HANDLING = "handling"
    VALIDATING_OUTPUT = "validating_output"
    FORMATTING = "formatting"
    DELIVERING = "delivering"
    LOGGING = "logging"
    RECOVERING = "recovering"
    DONE = "done"


@dataclass(frozen=True)
class DispatchOutcome:
    status: Literal["replied", "recovered"]
    correlation_id: str
    states: tuple[DispatchState, ...]
    reply: str | None = None
    intent: ClassifiedIntent | None = None
    skill_name: str | None = None
    error_kind: ErrorKind | None = None
    severity: str | None = None
    delivered: bool = False
    latency_ms: int = 0


class Dispatcher:
    def __init__(
        self,
        *,
        classifier: IntentClassifier,
        registry: SkillRegistry,
        formatter: OutputFormatter,
        adapters: Mapping[str, ConnectedAdapter],
        min_score: float,
        max_concurrency: int | None = None,
        timeout_sec: float | None = None,
        slot_extractor: SlotExtractor | None = None,
    ) -> None:
        self._classifier = classifier
        self._registry = registry
        self._formatter = formatter
        self._adapters = dict(adapters)
        self._min_score = float(min_score)
        self._timeout_sec = timeout_sec
        self._slot_extractor = slot_extractor
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
        self._tasks: set[asyncio.Task[DispatchOutcome]] = set()

    @property
    def adapters(self) -> Mapping[str, ConnectedAdapter]:
        return dict(self._adapters)

    def spawn(self, utterance: Utterance) -> asyncio.Task[DispatchOutcome]:
        task = asyncio.create_task(self.dispatch(utterance))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> list[DispatchOutcome]:
        if not self._tasks:
            return []
        return list(await asyncio.gather(*list(self._tasks)))

    async def dispatch(self, utterance: Utterance) -> DispatchOutcome:
        if utterance.correlation_id is None:
            utterance = replace(utterance, correlation_id=uuid.uuid4().hex)
        if self._semaphore is None:
            return await self._run(utterance)
        async with self._semaphore:
            return await self._run(utterance)

    async def _run(self, utterance: Utterance) -> DispatchOutcome:
        correlation_id = str(utterance.correlation_id)
        started = time.monotonic()
        states: list[DispatchState] = [DispatchState.IDLE]
        intent: ClassifiedIntent | None = None
        skill_name: str | None = None
        try:
            states.append(DispatchState.CLASSIFYING)
            intent = await self._bounded(
                detect_intent(self._classifier, utterance.text, min_score=self._min_score),
                DispatchState.CLASSIFYING,
            )

            states.append(DispatchState.MATCHING)
            envelope = build_envelope(utterance, intent, slot_extractor=self._slot_extractor)
            skill = self._registry.match(envelope)
            if skill is None:
                raise UnresolvableIntent(
                    f"No skill can handle intent {intent.intent_name!r}", intent=intent.intent_name
                )
            skill_name = skill.info.name
            logger.info(
                "Message matched event=dispatch.intent_matched intent=%s skill=%s score=%.2f",
                intent.intent_name,
                skill_name,
                intent.score,
                extra={
                    "correlation_id": correlation_id,
                    "channel": envelope.session.channel,
                    "user_id": envelope.session.author,
                    "adapter": utterance.adapter,
                },
            )

            states.append(DispatchState.HANDLING)
            content = await self._bounded(skill.handle(envelope), DispatchState.HANDLING)

            states.append(DispatchState.VALIDATING_OUTPUT)
            if not isinstance(content, str):
                raise UnprocessableSkillResponse(
                    f"Skill {skill_name!r} returned {type(content).__name__}, expected str",
                    skill=skill_name,
                )

            states.append(DispatchState.FORMATTING)
            rendered = self._formatter.format(content, utterance.adapter)

            states.append(DispatchState.DELIVERING)
            connected = self._adapters.get(utterance.adapter)
            if connected is None:
                raise UnknownAdapter(f"Adapter {utterance.adapter!r} is not connected", adapter=utterance.adapter)
            await self._bounded(
                connected.client.send(envelope.session.channel, rendered),
                DispatchState.DELIVERING,
            )

            states.append(DispatchState.LOGGING)
            latency_ms = _elapsed_ms(started)
            logger.success(
                "Skill reply sent event=dispatch.reply_sent intent=%s skill=%s latency_ms=%s",
                intent.intent_name,
                skill_name,
                latency_ms,
                extra={
                    "correlation_id": correlation_id,
                    "channel": envelope.session.channel,
                    "user_id": envelope.session.author,
                    "adapter": utterance.adapter,
                },
            )
            states.append(DispatchState.DONE)
            return DispatchOutcome(
                status="replied",
                correlation_id=correlation_id,
                states=tuple(states),
                reply=rendered,
                intent=intent,
                skill_name=skill_name,
                delivered=True,
                latency_ms=latency_ms,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            failed_stage = states[-1]
            states.append(DispatchState.RECOVERING)
            result = await recover(
                exc,
                utterance=utterance,
                adapters=self._adapters,
                formatter=self._formatter,
                stage=failed_stage.value,
                timeout_sec=self._timeout_sec,
            )
            states.append(DispatchState.DONE)
            return DispatchOutcome(
                status="recovered",
                correlation_id=correlation_id,
                states=tuple(states),
                reply=result.reply,
                intent=intent,
                skill_name=skill_name,
                error_kind=result.kind,
                severity=result.severity,
                delivered=result.delivered,
                latency_ms=_elapsed_ms(started),
            )

    async def _bounded(self, awaitable: Awaitable[T], stage: DispatchState) -> T:
        if self._timeout_sec is None:
            return await awaitable
        deadline = asyncio.timeout(self._timeout_sec)
        try:
            async with deadline:
                return await awaitable
        except TimeoutError as exc:
            if not deadline.expired():
                raise
            raise DispatchTimeout(
                f"Stage {stage.value} exceeded {self._timeout_sec}s", stage=stage.value
            ) from exc


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
