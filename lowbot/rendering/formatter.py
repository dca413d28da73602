"""Channel-specific rendering of skill output."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Literal, Mapping

from lowbot.agent.errors import UnknownAdapter

Markup = Literal["plain", "ssml", "markdown"]

_ELLIPSIS = "…"
_SSML_TAG_PATTERN = re.compile(
    r"</?(speak|s|p|break|emphasis|prosody|say-as|sub|audio|voice|lang|phoneme|mark)\b[^>]*>",
    re.IGNORECASE,
)
_SSML_WRAPPER = ("<speak><s>", "</s></speak>")
_SENTENCE_TAG_PATTERN = re.compile(r"</s>|<break[^>]*/?>", re.IGNORECASE)
_SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?])\s+")
_MARKDOWN_SPECIAL = re.compile(r"([\\`*_\[\]()#+\-.!|>~])")
_MARKDOWN_UNIT = re.compile(r"\\.|.", re.DOTALL)


@dataclass(frozen=True)
class OutputConfig:
    markup: Markup = "plain"
    max_length: int | None = None
    prefix: str = ""

    def __post_init__(self) -> None:
        if self.markup not in ("plain", "ssml", "markdown"):
            raise ValueError(f"Unsupported markup: {self.markup!r}")
        if self.max_length is not None and self.max_length < 1:
            raise ValueError("max_length must be positive")
        if self.markup == "ssml" and self.max_length is not None and self.max_length <= _ssml_overhead():
            raise ValueError(f"ssml max_length must exceed {_ssml_overhead()} characters of markup")


class OutputFormatter:
    def __init__(self, configs: Mapping[str, OutputConfig]) -> None:
        self._configs = dict(configs)

    def config_for(self, adapter_name: str) -> OutputConfig:
        config = self._configs.get(str(adapter_name))
        if config is None:
            raise UnknownAdapter(f"No output configuration for adapter {adapter_name!r}", adapter=adapter_name)
        return config

    def format(self, content: str, adapter_name: str) -> str:
        config = self.config_for(adapter_name)
        if config.markup == "ssml":
            rendered = to_ssml(content, prefix=config.prefix)
            return rendered if config.max_length is None else _truncate_ssml(rendered, config.max_length)
        text = f"{config.prefix}{to_plain_text(content)}"
        if config.markup == "markdown":
            # Escape before measuring so the limit holds for what is sent.
            text = _MARKDOWN_SPECIAL.sub(r"\\\1", text)
            units = _MARKDOWN_UNIT.findall(text)
        else:
            units = list(text)
        if config.max_length is not None:
            text = _truncate_units(units, config.max_length)
        return text


def to_plain_text(content: str) -> str:
    """Drop SSML markup only; other angle brackets are ordinary text."""
    text = _SENTENCE_TAG_PATTERN.sub(" ", str(content))
    text = _SSML_TAG_PATTERN.sub("", text)
    text = html.unescape(text)
    return " ".join(text.split())


def to_ssml(content: str, *, prefix: str = "") -> str:
    raw = str(content).strip()
    if raw.lower().startswith("<speak"):
        return raw
    text = f"{prefix}{to_plain_text(raw)}"
    sentences = [part for part in _SENTENCE_SPLIT_PATTERN.split(text) if part]
    body = "".join(f"<s>{html.escape(sentence, quote=False)}</s>" for sentence in sentences)
    return f"<speak>{body}</speak>"


def _truncate_units(units: list[str], max_length: int) -> str:
    """Cut at unit boundaries so an escape sequence is never split."""
    text = "".join(units)
    if len(text) <= max_length:
        return text
    budget = max_length - len(_ELLIPSIS)
    kept: list[str] = []
    used = 0
    for unit in units:
        if used + len(unit) > budget:
            break
        kept.append(unit)
        used += len(unit)
    while kept and kept[-1].isspace():
        kept.pop()
    return "".join(kept) + _ELLIPSIS


def _truncate_ssml(ssml: str, max_length: int) -> str:
    if len(ssml) <= max_length:
        return ssml
    units = [html.escape(char, quote=False) for char in to_plain_text(ssml)]
    opening, closing = _SSML_WRAPPER
    return f"{opening}{_truncate_units(units, max_length - _ssml_overhead())}{closing}"


def _ssml_overhead() -> int:
    return sum(len(part) for part in _SSML_WRAPPER)
