"""Pytest configuration and fixtures for goldagent tests.

Every test gets its own data root: ``GOLDAGENT_HOME`` points at a fresh
temporary directory and the cached settings are dropped before and after,
so nothing touches the user's real ``~/.goldagent``.
"""

from typing import Dict, List, Optional

import pytest

from goldagent.scheduler.command_runner import ProcessResult
from goldagent.settings import clear_settings_cache, get_settings


@pytest.fixture(autouse=True)
def isolate_data_root(tmp_path_factory, monkeypatch):
    """Point the data root at a per-test temp directory."""
    home = tmp_path_factory.mktemp("goldagent_home")
    monkeypatch.setenv("GOLDAGENT_HOME", str(home))
    monkeypatch.setenv("GOLDAGENT_RETRY_DELAY", "0")
    clear_settings_cache()
    yield home
    clear_settings_cache()


@pytest.fixture
def settings():
    s = get_settings()
    s.ensure_directories()
    return s


class FakeRunner:
    """Process runner returning scripted results instead of spawning.

    ``script`` maps a command prefix to a list of results handed out in
    order; the last result repeats once the list is exhausted.
    """

    def __init__(self, script: Optional[Dict[str, List[ProcessResult]]] = None):
        self.script = script or {}
        self.calls: List[tuple] = []
        self.terminated = 0

    @staticmethod
    def ok(stdout: str = "", exit_code: int = 0) -> ProcessResult:
        return ProcessResult(exit_code=exit_code, stdout=stdout, stderr="", duration=0.01)

    def run(self, command, env=None, timeout=None):
        self.calls.append((command, dict(env or {}), timeout))
        for prefix, results in self.script.items():
            if command.startswith(prefix):
                if len(results) > 1:
                    return results.pop(0)
                return results[0]
        return self.ok()

    def terminate_all(self):
        self.terminated += 1
        return 0


@pytest.fixture
def fake_runner():
    return FakeRunner()
