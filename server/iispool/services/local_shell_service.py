"""Run PowerShell on the executing machine."""
from __future__ import annotations

import base64
import logging
import subprocess
from time import perf_counter
from typing import Optional

from ..core.config import settings
from .powershell import format_output_preview, split_exit_code, wrap_command

logger = logging.getLogger(__name__)

# Redirected stdout otherwise uses the console OEM code page
UTF8_OUTPUT_PREAMBLE = "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8"


class LocalShellError(RuntimeError):
    """Raised when the local PowerShell process cannot be run."""


def encode_command(script: str) -> str:
    """Encode a script for ``powershell.exe -EncodedCommand``."""

    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


class LocalShellService:
    """Execute PowerShell scripts in a child ``powershell.exe`` process."""

    def __init__(self, executable: Optional[str] = None) -> None:
        self._executable = executable

    @property
    def executable(self) -> str:
        return self._executable or settings.powershell_exe

    def execute_ps_command(self, command: str) -> tuple[str, str, int]:
        """Execute a PowerShell command locally and collect its output."""

        truncated = command.replace("\n", " ")
        if len(truncated) > 120:
            truncated = f"{truncated[:117]}..."
        logger.info("Executing local PowerShell command: %s", truncated)
        logger.debug("Full local PowerShell command: %s", command)

        args = [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-EncodedCommand",
            encode_command(UTF8_OUTPUT_PREAMBLE + "\n" + wrap_command(command)),
        ]

        start_time = perf_counter()
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=settings.local_command_timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise LocalShellError(
                f"{self.executable} not found; local pool actions need Windows PowerShell"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise LocalShellError(
                f"Local PowerShell command timed out after {settings.local_command_timeout}s"
            ) from exc
        except OSError as exc:
            raise LocalShellError(f"Failed to start {self.executable}: {exc}") from exc

        stdout, exit_code = split_exit_code(completed.stdout or "")
        stderr = completed.stderr or ""
        if exit_code is None:
            exit_code = completed.returncode

        logger.info(
            "Local command completed in %.2fs with exit code %s (stdout=%d bytes, stderr=%d bytes)",
            perf_counter() - start_time,
            exit_code,
            len(stdout.encode("utf-8")),
            len(stderr.encode("utf-8")),
        )
        stderr_preview = format_output_preview(stderr)
        if stderr_preview:
            level = logger.warning if exit_code != 0 else logger.info
            level("Local command stderr preview:%s", stderr_preview)

        return stdout, stderr, exit_code


local_shell_service = LocalShellService()

__all__ = [
    "LocalShellError",
    "LocalShellService",
    "encode_command",
    "local_shell_service",
]
