from __future__ import annotations

import dataclasses

import pytest

from lowbot.agent.errors import MalformedMessage
from lowbot.cognition.envelope import ClassifiedIntent, build_envelope
from lowbot.io.contracts import Utterance
from lowbot.io.inbound import normalize_payload


def _utterance(**overrides: object) -> Utterance:
    values: dict[str, object] = {
        "text": "book a table for 4",
        "author": "ana",
        "channel": "general",
        "adapter": "discord",
        "timestamp": 1.0,
        "correlation_id": "corr-9",
    }
    values.update(overrides)
    return Utterance(**values)  # type: ignore[arg-type]


def test_envelope_carries_session_and_intent() -> None:
    intent = ClassifiedIntent("book", 0.8)
    envelope = build_envelope(_utterance(), intent)

    assert envelope.session.author == "ana"
    assert envelope.session.channel == "general"
    assert envelope.intent is intent
    assert envelope.input_data is None
    assert envelope.adapter == "discord"
    assert envelope.correlation_id == "corr-9"


@pytest.mark.parametrize("field_name", ["author", "channel"])
def test_missing_session_identity_is_malformed(field_name: str) -> None:
    with pytest.raises(MalformedMessage):
        build_envelope(_utterance(**{field_name: None}), ClassifiedIntent("book", 0.8))


def test_blank_session_identity_is_malformed() -> None:
    with pytest.raises(MalformedMessage):
        build_envelope(_utterance(author="   "), ClassifiedIntent("book", 0.8))


def test_slot_extractor_populates_read_only_input_data() -> None:
    def _extract(utterance: Utterance, intent: ClassifiedIntent) -> dict[str, object]:
        return {"party_size": int(utterance.text.rsplit(" ", 1)[-1]), "intent": intent.intent_name}

    envelope = build_envelope(_utterance(), ClassifiedIntent("book", 0.8), slot_extractor=_extract)

    assert envelope.input_data == {"party_size": 4, "intent": "book"}
    with pytest.raises(TypeError):
        envelope.input_data["party_size"] = 5  # type: ignore[index]


def test_envelope_is_immutable() -> None:
    envelope = build_envelope(_utterance(), ClassifiedIntent("book", 0.8))
    with pytest.raises(dataclasses.FrozenInstanceError):
        envelope.text = "changed"  # type: ignore[misc]


def test_normalize_payload_reads_chat_fields() -> None:
    utterance = normalize_payload(
        {"content": " hello ", "user_id": 42, "chat_id": -100123, "timestamp": "12.5"},
        adapter="telegram",
    )

    assert utterance.text == "hello"
    assert utterance.author == "42"
    assert utterance.channel == "-100123"
    assert utterance.adapter == "telegram"
    assert utterance.timestamp == 12.5
    assert utterance.metadata["raw"]["user_id"] == 42


def test_normalize_payload_keeps_missing_identity_as_none() -> None:
    utterance = normalize_payload({"text": "hi"}, adapter="api")
    assert utterance.author is None
    assert utterance.channel is None
