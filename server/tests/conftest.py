"""Test configuration for server test suite."""

import json
import os
from typing import Any, List, Optional

import pytest

# Keep developer credentials and tokens out of the test environment
for _name in ("WINRM_USERNAME", "WINRM_PASSWORD", "API_TOKEN", "LOCAL_HOST_ALIASES"):
    os.environ.pop(_name, None)


LOCAL_ALIASES = ["localhost", ".", "127.0.0.1", "::1", "web-local"]


def json_output(items: Any) -> str:
    """Render script output the way ConvertTo-Json -Compress prints it."""

    return json.dumps(items, separators=(",", ":")) + "\n"


class FakeWinRM:
    """Stand-in for WinRMService that records every remote call."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.calls: List[dict] = []
        self._responses = list(responses or [])

    def queue(self, response: Any) -> None:
        self._responses.append(response)

    def execute_ps_command(self, hostname, command, credential=None):
        self.calls.append({"hostname": hostname, "command": command, "credential": credential})
        if not self._responses:
            return "[]\n", "", 0
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeShell:
    """Stand-in for LocalShellService that records every local call."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.calls: List[str] = []
        self._responses = list(responses or [])

    def queue(self, response: Any) -> None:
        self._responses.append(response)

    def execute_ps_command(self, command):
        self.calls.append(command)
        if not self._responses:
            return "[]\n", "", 0
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_winrm():
    return FakeWinRM()


@pytest.fixture
def fake_shell():
    return FakeShell()


@pytest.fixture
def local_aliases():
    return list(LOCAL_ALIASES)
