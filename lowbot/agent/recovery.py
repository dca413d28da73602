"""Maps pipeline failures to a user-facing reply and a log severity.

Every failure that reaches the dispatcher's boundary ends here. The reply is
sent back to the originating channel when one is known; sending the apology
is itself guarded so that recovery never raises.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

from lowbot.agent.errors import ErrorKind, classify_failure
from lowbot.io.adapters import ConnectedAdapter
from lowbot.io.contracts import Utterance
from lowbot.observability.log_manager import get_component_logger
from lowbot.rendering.formatter import OutputFormatter

logger = get_component_logger("agent.recovery")

GENERIC_APOLOGY = "sorry, something went wrong on my side"


@dataclass(frozen=True)
class RecoveryPolicy:
    reply: str
    severity: str


RECOVERY_POLICY: dict[ErrorKind, RecoveryPolicy] = {
    ErrorKind.PAYMENT_DECLINED: RecoveryPolicy("you don't have enough for that", "error"),
    ErrorKind.UNPROCESSABLE_SKILL_RESPONSE: RecoveryPolicy("my skill for this is broken, try later", "error"),
    ErrorKind.UNRESOLVABLE_INTENT: RecoveryPolicy(
        "I understand your intent but have no skill for that", "error"
    ),
    ErrorKind.SERVICE_UNAVAILABLE: RecoveryPolicy("the data service I need is down", "error"),
    ErrorKind.UNKNOWN: RecoveryPolicy(GENERIC_APOLOGY, "critical"),
}


@dataclass(frozen=True)
class RecoveryResult:
    kind: ErrorKind
    severity: str
    reply: str
    delivered: bool


def policy_for(kind: ErrorKind) -> RecoveryPolicy:
    return RECOVERY_POLICY.get(kind, RECOVERY_POLICY[ErrorKind.UNKNOWN])


async def recover(
    exc: BaseException,
    *,
    utterance: Utterance,
    adapters: Mapping[str, ConnectedAdapter],
    formatter: OutputFormatter,
    stage: str,
    timeout_sec: float | None = None,
) -> RecoveryResult:
    kind = classify_failure(exc)
    policy = policy_for(kind)
    logger.exception(
        "Dispatch recovered event=dispatch.recovered error_code=%s stage=%s adapter=%s",
        kind.value,
        stage,
        utterance.adapter,
        exc_info=exc,
        level=policy.severity,
        extra={
            "correlation_id": utterance.correlation_id,
            "channel": utterance.channel,
            "user_id": utterance.author,
        },
    )
    delivered = await _send_apology(
        policy.reply,
        utterance=utterance,
        adapters=adapters,
        formatter=formatter,
        timeout_sec=timeout_sec,
    )
    return RecoveryResult(kind=kind, severity=policy.severity, reply=policy.reply, delivered=delivered)


async def _send_apology(
    reply: str,
    *,
    utterance: Utterance,
    adapters: Mapping[str, ConnectedAdapter],
    formatter: OutputFormatter,
    timeout_sec: float | None,
) -> bool:
    connected = adapters.get(utterance.adapter)
    if connected is None or not utterance.channel:
        logger.critical(
            "Recovery reply dropped event=recovery.reply_failed adapter=%s channel=%s reason=no_route",
            utterance.adapter,
            utterance.channel,
            extra={"correlation_id": utterance.correlation_id},
        )
        return False
    try:
        content = formatter.format(reply, utterance.adapter)
        await asyncio.wait_for(connected.client.send(utterance.channel, content), timeout=timeout_sec)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.exception(
            "Recovery reply failed event=recovery.reply_failed adapter=%s channel=%s",
            utterance.adapter,
            utterance.channel,
            exc_info=exc,
            level="critical",
            extra={"correlation_id": utterance.correlation_id},
        )
        return False
    return True
