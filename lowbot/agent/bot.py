from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Mapping

from lowbot.agent.dispatcher import DispatchOutcome, Dispatcher
from lowbot.agent.errors import UnknownAdapter
from lowbot.cognition.envelope import ClassifiedIntent
from lowbot.cognition.intent_classifier import (
    IntentClassifier,
    IntentSpec,
    PatternIntentClassifier,
    ensure_classifier,
)
from lowbot.cognition.skills.registry import SkillRegistry
from lowbot.config.bot_config import BotConfig
from lowbot.io.adapters import ConnectedAdapter, connect_adapter, resolve_conf
from lowbot.io.contracts import Utterance
from lowbot.io.inbound import normalize_payload
from lowbot.observability.log_manager import get_component_logger
from lowbot.rendering.formatter import OutputFormatter

logger = get_component_logger("agent.bot")

ClassifierFactory = Callable[[Iterable[IntentSpec], float], IntentClassifier]


class LowBot:
    def __init__(
        self,
        config: BotConfig,
        classifier_cls: ClassifierFactory = PatternIntentClassifier,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._environ = environ
        self._classifier = ensure_classifier(classifier_cls(config.intents, config.min_score))
        self._formatter = OutputFormatter({binding.name: binding.output for binding in config.adapters})
        self._registry = SkillRegistry(config.skills).freeze()
        self._adapters: dict[str, ConnectedAdapter] = {}
        self._dispatcher: Dispatcher | None = None

    @property
    def config(self) -> BotConfig:
        return self._config

    @property
    def registry(self) -> SkillRegistry:
        return self._registry

    @property
    def formatter(self) -> OutputFormatter:
        return self._formatter

    @property
    def dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            raise RuntimeError("LowBot.start() must complete before dispatching")
        return self._dispatcher

    def conf(self, adapter: str | None = None) -> dict[str, str | None]:
        name = adapter or self._config.default_adapter
        binding = self._config.adapter(name)
        if binding is None:
            raise UnknownAdapter(f"Adapter {name!r} is not registered", adapter=name)
        return resolve_conf(binding, self._environ)

    async def start(self) -> None:
        if self._dispatcher is not None:
            return
        adapters: dict[str, ConnectedAdapter] = {}
        for binding in self._config.adapters:
            connected = await connect_adapter(binding, self.conf(binding.name))
            adapters[connected.name] = connected
            logger.info(
                "Adapter ready event=adapter.ready adapter=%s login=%s",
                connected.name,
                binding.client.login or "none",
            )
        self._adapters = adapters
        self._dispatcher = Dispatcher(
            classifier=self._classifier,
            registry=self._registry,
            formatter=self._formatter,
            adapters=adapters,
            min_score=self._config.min_score,
            max_concurrency=self._config.max_concurrency,
            timeout_sec=self._config.dispatch_timeout_sec,
            slot_extractor=self._config.slot_extractor,
        )

    async def input(self, text: str) -> ClassifiedIntent:
        """Raw classification, without the resolution threshold applied."""
        return await self._classifier.classify(text)

    async def output(self, content: str, channel: str, adapter: str | None = None) -> str:
        name = adapter or self._config.default_adapter
        rendered = self._formatter.format(content, name)
        connected = self._adapters.get(name)
        if connected is None:
            raise UnknownAdapter(f"Adapter {name!r} is not connected", adapter=name)
        await connected.client.send(channel, rendered)
        return rendered

    async def respond(self, utterance: Utterance) -> DispatchOutcome:
        return await self.dispatcher.dispatch(utterance)

    async def receive(self, payload: dict[str, Any], *, adapter: str) -> DispatchOutcome:
        """Dispatch a raw platform payload as delivered by an adapter client."""
        return await self.respond(normalize_payload(payload, adapter=adapter))

    def spawn(self, utterance: Utterance) -> asyncio.Task[DispatchOutcome]:
        return self.dispatcher.spawn(utterance)
