from __future__ import annotations

import asyncio
import logging

from lowbot.agent.dispatcher import DispatchState, Dispatcher
from lowbot.agent.errors import ErrorKind, PaymentDeclined
from lowbot.agent.recovery import GENERIC_APOLOGY
from lowbot.cognition.envelope import ClassifiedIntent, RequestEnvelope
from lowbot.cognition.skills.base import SkillInfo
from lowbot.cognition.skills.registry import SkillRegistry
from lowbot.io.adapters import AdapterBinding, ClientSpec, ConnectedAdapter
from lowbot.io.contracts import Utterance
from lowbot.observability.log_manager import SUCCESS
from lowbot.rendering.formatter import OutputConfig, OutputFormatter


class _FixedClassifier:
    def __init__(self, intent_name: str = "greet", score: float = 0.9, *, error: Exception | None = None) -> None:
        self._result = ClassifiedIntent(intent_name, score)
        self._error = error
        self.calls: list[str] = []

    async def classify(self, text: str) -> ClassifiedIntent:
        self.calls.append(text)
        if self._error is not None:
            raise self._error
        return self._result


class _RecordingClient:
    def __init__(self, *, refuse_first: int = 0) -> None:
        self.sent: list[tuple[str, str]] = []
        self._refuse_remaining = refuse_first

    async def send(self, channel: str, content: str) -> None:
        if self._refuse_remaining > 0:
            self._refuse_remaining -= 1
            raise ConnectionRefusedError("connection refused")
        self.sent.append((channel, content))


class _Skill:
    def __init__(self, name: str, *, accepts: bool = True, result: object = "Hey there", error: Exception | None = None) -> None:
        self.info = SkillInfo(name=name)
        self._accepts = accepts
        self._result = result
        self._error = error
        self.predicate_calls = 0
        self.handle_calls = 0

    def can_handle(self, envelope: RequestEnvelope) -> bool:
        self.predicate_calls += 1
        return self._accepts

    async def handle(self, envelope: RequestEnvelope) -> object:
        self.handle_calls += 1
        if self._error is not None:
            raise self._error
        return self._result


class _Greeter(_Skill):
    def __init__(self) -> None:
        super().__init__("Greeter")

    def can_handle(self, envelope: RequestEnvelope) -> bool:
        self.predicate_calls += 1
        return envelope.intent.intent_name == "greet"


def _utterance(text: str = "hello", **overrides: object) -> Utterance:
    values: dict[str, object] = {
        "text": text,
        "author": "ana",
        "channel": "general",
        "adapter": "chat",
        "timestamp": 0.0,
        "correlation_id": "corr-1",
    }
    values.update(overrides)
    return Utterance(**values)  # type: ignore[arg-type]


def _dispatcher(
    skills: list[object],
    *,
    classifier: _FixedClassifier | None = None,
    client: _RecordingClient | None = None,
    timeout_sec: float | None = None,
    max_concurrency: int | None = None,
) -> tuple[Dispatcher, _RecordingClient]:
    client = client or _RecordingClient()
    binding = AdapterBinding(
        name="chat",
        client=ClientSpec(factory=lambda: client),
        output=OutputConfig(markup="plain"),
    )
    dispatcher = Dispatcher(
        classifier=classifier or _FixedClassifier(),
        registry=SkillRegistry(skills).freeze(),  # type: ignore[arg-type]
        formatter=OutputFormatter({"chat": binding.output}),
        adapters={"chat": ConnectedAdapter(binding=binding, client=client)},
        min_score=0.75,
        max_concurrency=max_concurrency,
        timeout_sec=timeout_sec,
    )
    return dispatcher, client


def test_greeting_is_delivered_and_logged_as_success(caplog) -> None:
    greeter = _Greeter()
    dispatcher, client = _dispatcher([greeter])

    with caplog.at_level(logging.INFO):
        outcome = asyncio.run(dispatcher.dispatch(_utterance("hello")))

    assert outcome.status == "replied"
    assert outcome.reply == "Hey there"
    assert outcome.skill_name == "Greeter"
    assert client.sent == [("general", "Hey there")]
    assert outcome.states == (
        DispatchState.IDLE,
        DispatchState.CLASSIFYING,
        DispatchState.MATCHING,
        DispatchState.HANDLING,
        DispatchState.VALIDATING_OUTPUT,
        DispatchState.FORMATTING,
        DispatchState.DELIVERING,
        DispatchState.LOGGING,
        DispatchState.DONE,
    )
    assert any(
        r.levelno == SUCCESS and "dispatch.reply_sent" in r.getMessage() for r in caplog.records
    )
    assert any("dispatch.intent_matched" in r.getMessage() for r in caplog.records)


def test_low_score_recovers_as_unresolvable_without_invoking_skill() -> None:
    greeter = _Greeter()
    dispatcher, client = _dispatcher([greeter], classifier=_FixedClassifier("greet", 0.4))

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.status == "recovered"
    assert outcome.error_kind == ErrorKind.UNRESOLVABLE_INTENT
    assert outcome.severity == "error"
    assert greeter.predicate_calls == 0
    assert greeter.handle_calls == 0
    assert client.sent == [("general", "I understand your intent but have no skill for that")]
    assert outcome.states[-2:] == (DispatchState.RECOVERING, DispatchState.DONE)


def test_score_equal_to_threshold_is_unresolved() -> None:
    dispatcher, _ = _dispatcher([_Greeter()], classifier=_FixedClassifier("greet", 0.75))

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.error_kind == ErrorKind.UNRESOLVABLE_INTENT


def test_no_matching_skill_is_unresolvable() -> None:
    dispatcher, client = _dispatcher([_Skill("never", accepts=False)])

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.error_kind == ErrorKind.UNRESOLVABLE_INTENT
    assert DispatchState.HANDLING not in outcome.states
    assert client.sent == [("general", "I understand your intent but have no skill for that")]


def test_non_string_handler_output_is_never_delivered() -> None:
    dispatcher, client = _dispatcher([_Skill("answer", result=42)])

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.error_kind == ErrorKind.UNPROCESSABLE_SKILL_RESPONSE
    assert DispatchState.FORMATTING not in outcome.states
    assert client.sent == [("general", "my skill for this is broken, try later")]


def test_only_accepting_skill_is_selected() -> None:
    first = _Skill("A", accepts=False, result="from A")
    second = _Skill("B", accepts=True, result="from B")
    third = _Skill("C", accepts=False, result="from C")
    dispatcher, client = _dispatcher([first, second, third])

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.skill_name == "B"
    assert client.sent == [("general", "from B")]
    assert first.handle_calls == 0
    assert third.handle_calls == 0


def test_earlier_registration_wins_when_both_accept() -> None:
    first = _Skill("dup", result="first")
    second = _Skill("dup", result="second")
    dispatcher, client = _dispatcher([first, second])

    for _ in range(3):
        asyncio.run(dispatcher.dispatch(_utterance()))

    assert client.sent == [("general", "first")] * 3
    assert second.predicate_calls == 0


def test_refused_delivery_recovers_and_next_message_is_served(caplog) -> None:
    dispatcher, client = _dispatcher([_Greeter()], client=_RecordingClient(refuse_first=1))

    with caplog.at_level(logging.INFO):
        first = asyncio.run(dispatcher.dispatch(_utterance(correlation_id="corr-1")))
        second = asyncio.run(dispatcher.dispatch(_utterance(correlation_id="corr-2")))

    assert first.error_kind == ErrorKind.SERVICE_UNAVAILABLE
    assert first.states[-3:] == (DispatchState.DELIVERING, DispatchState.RECOVERING, DispatchState.DONE)
    assert second.status == "replied"
    assert client.sent == [
        ("general", "the data service I need is down"),
        ("general", "Hey there"),
    ]
    assert any(
        r.levelno == logging.ERROR and "dispatch.recovered" in r.getMessage() for r in caplog.records
    )


def test_classifier_failure_is_service_unavailable_not_unresolvable() -> None:
    classifier = _FixedClassifier(error=RuntimeError("scoring backend down"))
    dispatcher, client = _dispatcher([_Greeter()], classifier=classifier)

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.error_kind == ErrorKind.SERVICE_UNAVAILABLE
    assert classifier.calls == ["hello"]
    assert client.sent == [("general", "the data service I need is down")]


def test_payment_declined_from_skill() -> None:
    dispatcher, client = _dispatcher([_Skill("shop", error=PaymentDeclined("insufficient funds"))])

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.error_kind == ErrorKind.PAYMENT_DECLINED
    assert client.sent == [("general", "you don't have enough for that")]


def test_unexpected_skill_error_is_unknown_and_critical(caplog) -> None:
    dispatcher, client = _dispatcher([_Skill("buggy", error=ValueError("boom"))])

    with caplog.at_level(logging.INFO):
        outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.error_kind == ErrorKind.UNKNOWN
    assert outcome.severity == "critical"
    assert client.sent == [("general", GENERIC_APOLOGY)]
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


def test_message_without_author_is_recovered() -> None:
    greeter = _Greeter()
    dispatcher, client = _dispatcher([greeter])

    outcome = asyncio.run(dispatcher.dispatch(_utterance(author=None)))

    assert outcome.status == "recovered"
    assert outcome.error_kind == ErrorKind.UNKNOWN
    assert greeter.predicate_calls == 0
    assert client.sent == [("general", GENERIC_APOLOGY)]
    assert outcome.states[-3:] == (DispatchState.MATCHING, DispatchState.RECOVERING, DispatchState.DONE)


def test_unknown_adapter_is_reported_without_delivery(caplog) -> None:
    dispatcher, client = _dispatcher([_Greeter()])

    with caplog.at_level(logging.INFO):
        outcome = asyncio.run(dispatcher.dispatch(_utterance(adapter="pager")))

    assert outcome.status == "recovered"
    assert outcome.error_kind == ErrorKind.UNKNOWN
    assert outcome.delivered is False
    assert client.sent == []
    assert any("recovery.reply_failed" in r.getMessage() for r in caplog.records)


def test_hung_handler_times_out_as_service_unavailable() -> None:
    class _SlowSkill(_Skill):
        async def handle(self, envelope: RequestEnvelope) -> object:
            await asyncio.sleep(5)
            return "late"

    dispatcher, client = _dispatcher([_SlowSkill("slow")], timeout_sec=0.05)

    outcome = asyncio.run(dispatcher.dispatch(_utterance()))

    assert outcome.error_kind == ErrorKind.SERVICE_UNAVAILABLE
    assert client.sent == [("general", "the data service I need is down")]


def test_concurrency_cap_bounds_in_flight_dispatches() -> None:
    in_flight = 0
    peak = 0

    class _TrackingSkill(_Skill):
        async def handle(self, envelope: RequestEnvelope) -> object:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return f"done {envelope.correlation_id}"

    dispatcher, client = _dispatcher([_TrackingSkill("tracking")], max_concurrency=2)

    async def _run() -> list:
        for index in range(6):
            dispatcher.spawn(_utterance(correlation_id=f"corr-{index}"))
        return await dispatcher.drain()

    outcomes = asyncio.run(_run())

    assert len(outcomes) == 6
    assert all(outcome.status == "replied" for outcome in outcomes)
    assert peak == 2
    assert len(client.sent) == 6


def test_missing_correlation_id_is_assigned() -> None:
    dispatcher, _ = _dispatcher([_Greeter()])

    outcome = asyncio.run(dispatcher.dispatch(_utterance(correlation_id=None)))

    assert outcome.correlation_id


def test_handler_timeout_error_keeps_its_kind_under_a_deadline() -> None:
    kinds = []
    for timeout_sec in (None, 5.0):
        dispatcher, _ = _dispatcher([_Skill("flaky", error=TimeoutError("upstream read"))], timeout_sec=timeout_sec)
        outcome = asyncio.run(dispatcher.dispatch(_utterance()))
        kinds.append(outcome.error_kind)

    assert kinds == [ErrorKind.UNKNOWN, ErrorKind.UNKNOWN]


def test_malformed_message_is_logged_at_matching_stage(caplog) -> None:
    dispatcher, _ = _dispatcher([_Greeter()])

    with caplog.at_level(logging.INFO):
        asyncio.run(dispatcher.dispatch(_utterance(channel=None)))

    recovered = [r.getMessage() for r in caplog.records if "dispatch.recovered" in r.getMessage()]
    assert len(recovered) == 1
    assert "stage=matching" in recovered[0]
