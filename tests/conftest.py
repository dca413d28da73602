from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_lowbot_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Settings are read from the environment at builder construction; keep a
    # developer's shell overrides out of the tests.
    for name in list(os.environ):
        if name.startswith("LOWBOT_"):
            monkeypatch.delenv(name, raising=False)
