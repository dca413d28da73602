"""Conversational dispatch core: intent -> skill -> formatted reply."""

from lowbot.agent.bot import LowBot
from lowbot.agent.dispatcher import DispatchOutcome, DispatchState, Dispatcher
from lowbot.agent.errors import ErrorKind, LowBotError
from lowbot.config.bot_config import BotConfig, BotConfigBuilder

__all__ = [
    "LowBot",
    "Dispatcher",
    "DispatchOutcome",
    "DispatchState",
    "ErrorKind",
    "LowBotError",
    "BotConfig",
    "BotConfigBuilder",
]
