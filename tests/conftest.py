import shutil
import subprocess
from pathlib import Path
from typing import Sequence

import pytest

from taskmill.agents import ModelSession
from taskmill.capabilities import CapabilityInvocation, CapabilityName, CapabilityResult


class NullIgnore:
    """Ignore oracle that hides nothing."""

    def filter(self, paths):
        return list(paths)


class ScriptedSession(ModelSession):
    """
    Replays pre-baked batches of invocations and records every send.

    `batches` is consumed in order; once empty, `default` is returned.
    `forced` answers any request that forces a capability.
    """

    def __init__(self, batches=None, default=None, forced=None):
        self.batches = list(batches or [])
        self.default = default or []
        self.forced = forced or []
        self.sends: list[dict] = []

    def send(
        self,
        *,
        text: str | None = None,
        results: Sequence[CapabilityResult] = (),
        force: CapabilityName | None = None,
    ) -> list[CapabilityInvocation]:
        self.sends.append({"text": text, "results": list(results), "force": force})
        if force is not None:
            return list(self.forced)
        if self.batches:
            return list(self.batches.pop(0))
        return list(self.default)


def call(name: str, call_id: str = "", **arguments) -> CapabilityInvocation:
    return CapabilityInvocation(name=name, arguments=arguments, call_id=call_id or f"call-{name}")


@pytest.fixture
def null_ignore():
    return NullIgnore()


@pytest.fixture
def scripted():
    return ScriptedSession


@pytest.fixture
def invocation():
    return call


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    if shutil.which("git") is None:
        pytest.skip("git not available")
    subprocess.run(["git", "init", "-q"], cwd=tmp_path, check=True)
    return tmp_path
