"""Closed failure taxonomy for the dispatch pipeline."""

from __future__ import annotations

from enum import Enum

from requests.exceptions import ConnectionError as RequestsConnectionError


class ErrorKind(str, Enum):
    PAYMENT_DECLINED = "payment_declined"
    UNPROCESSABLE_SKILL_RESPONSE = "unprocessable_skill_response"
    UNRESOLVABLE_INTENT = "unresolvable_intent"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


class LowBotError(Exception):
    """Base error; every subclass declares the taxonomy kind it recovers as."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.kind.value)
        self.context = dict(context)


class PaymentDeclined(LowBotError):
    kind = ErrorKind.PAYMENT_DECLINED


class UnprocessableSkillResponse(LowBotError):
    kind = ErrorKind.UNPROCESSABLE_SKILL_RESPONSE


class UnresolvableIntent(LowBotError):
    kind = ErrorKind.UNRESOLVABLE_INTENT


class ServiceUnavailable(LowBotError):
    kind = ErrorKind.SERVICE_UNAVAILABLE


class DispatchTimeout(ServiceUnavailable):
    pass


class MalformedMessage(LowBotError):
    pass


class UnknownAdapter(LowBotError):
    pass


def classify_failure(exc: BaseException) -> ErrorKind:
    if isinstance(exc, LowBotError):
        return exc.kind
    if isinstance(exc, ConnectionError):
        # ConnectionRefusedError is a ConnectionError subclass.
        return ErrorKind.SERVICE_UNAVAILABLE
    if isinstance(exc, RequestsConnectionError):
        return ErrorKind.SERVICE_UNAVAILABLE
    return ErrorKind.UNKNOWN
