from __future__ import annotations

import inspect
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from lowbot.rendering.formatter import OutputConfig

LOGIN_CONSTRUCTOR = "constructor"


@runtime_checkable
class AdapterClient(Protocol):
    async def send(self, channel: str, content: str) -> None:
        ...


@dataclass(frozen=True)
class ClientSpec:
    """How to build a platform client.

    ``login`` is ``"constructor"`` (resolved conf passed to the factory), the
    name of a method called with the token after construction, or ``None``
    for clients without an explicit login.
    """

    factory: Callable[..., Any]
    login: str | None = None


@dataclass(frozen=True)
class AdapterBinding:
    name: str
    client: ClientSpec
    vars: Mapping[str, str] = field(default_factory=dict)
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self) -> None:
        if not str(self.name or "").strip():
            raise ValueError("AdapterBinding requires a name")
        if not isinstance(self.client, ClientSpec) or not callable(self.client.factory):
            raise TypeError(f"AdapterBinding {self.name!r} requires a callable client factory")
        if self.client.login is not None and not isinstance(self.client.login, str):
            raise TypeError(f"AdapterBinding {self.name!r} login must be a method name or None")
        if not isinstance(self.output, OutputConfig):
            raise TypeError(f"AdapterBinding {self.name!r} output must be an OutputConfig")
        object.__setattr__(self, "vars", dict(self.vars))


@dataclass(frozen=True)
class ConnectedAdapter:
    binding: AdapterBinding
    client: AdapterClient

    @property
    def name(self) -> str:
        return self.binding.name


def resolve_conf(binding: AdapterBinding, environ: Mapping[str, str] | None = None) -> dict[str, str | None]:
    source = os.environ if environ is None else environ
    return {conf_key: source.get(env_key) for conf_key, env_key in binding.vars.items()}


async def connect_adapter(binding: AdapterBinding, conf: Mapping[str, str | None]) -> ConnectedAdapter:
    login = binding.client.login
    if login is None:
        client = binding.client.factory()
    else:
        token = conf.get("token")
        if not token:
            raise ValueError(f"Adapter {binding.name!r} requires a token to log in")
        if login == LOGIN_CONSTRUCTOR:
            client = binding.client.factory(dict(conf))
        else:
            client = binding.client.factory()
            method = getattr(client, login, None)
            if not callable(method):
                raise TypeError(f"Adapter {binding.name!r} client has no login method {login!r}")
            result = method(token)
            if inspect.isawaitable(result):
                await result
    if not isinstance(client, AdapterClient) or not inspect.iscoroutinefunction(client.send):
        raise TypeError(f"Adapter {binding.name!r} client must expose async send(channel, content)")
    return ConnectedAdapter(binding=binding, client=client)
