from __future__ import annotations

import sys
import time
from typing import TextIO

from lowbot.io.adapters import AdapterBinding, ClientSpec
from lowbot.io.contracts import Utterance
from lowbot.observability.log_manager import get_component_logger
from lowbot.rendering.formatter import OutputConfig

logger = get_component_logger("io.terminal_channel")

TERMINAL_ADAPTER = "terminal"


class TerminalClient:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    async def send(self, channel: str, content: str) -> None:
        stream = self._stream or sys.stdout
        logger.debug("TerminalClient deliver channel=%s text_len=%s", channel, len(content))
        stream.write(f"{content}\n")
        stream.flush()


def terminal_binding(stream: TextIO | None = None) -> AdapterBinding:
    return AdapterBinding(
        name=TERMINAL_ADAPTER,
        client=ClientSpec(factory=lambda: TerminalClient(stream)),
        output=OutputConfig(markup="plain"),
    )


def normalize_terminal_input(text: str, *, user_name: str | None = None) -> Utterance:
    return Utterance(
        text=str(text or "").strip(),
        author=user_name or "terminal",
        channel="terminal",
        adapter=TERMINAL_ADAPTER,
        timestamp=time.time(),
        metadata={},
    )
