from lowbot.io.contracts import Utterance
from lowbot.io.adapters import (
    AdapterBinding,
    AdapterClient,
    ClientSpec,
    ConnectedAdapter,
    connect_adapter,
    resolve_conf,
)

__all__ = [
    "Utterance",
    "AdapterBinding",
    "AdapterClient",
    "ClientSpec",
    "ConnectedAdapter",
    "connect_adapter",
    "resolve_conf",
]
