"""PowerShell script helpers shared by the local and remote executors."""
from __future__ import annotations

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

EXIT_SENTINEL = "__IISPOOL_EXIT_CODE__:"


def ps_quote(value: Optional[str]) -> str:
    """Return a single-quoted PowerShell literal."""

    escaped = (value or "").replace("'", "''")
    return f"'{escaped}'"


def ps_bool(value: bool) -> str:
    return "$true" if value else "$false"


def wrap_command(command: str) -> str:
    """Embed the requested command in exit code boilerplate."""

    return "\n".join(
        [
            "$ErrorActionPreference = 'Continue'",
            "$ProgressPreference = 'SilentlyContinue'",
            "$global:LASTEXITCODE = 0",
            "$PoolExitCode = 0",
            "try {",
            "    & {",
            "        " + command.replace("\n", "\n        "),
            "    }",
            "    if (-not $?) {",
            "        if ($LASTEXITCODE -ne $null -and $LASTEXITCODE -ne 0) {",
            "            $PoolExitCode = $LASTEXITCODE",
            "        } else {",
            "            $PoolExitCode = 1",
            "        }",
            "    }",
            "} catch {",
            "    $PoolExitCode = 1",
            "    Write-Error $_",
            "}",
            f'Write-Output "{EXIT_SENTINEL}$PoolExitCode"',
        ]
    )


def parse_exit_sentinel(text: str, hostname: str = "") -> Optional[int]:
    """Return the exit code carried by a sentinel line, if ``text`` is one."""

    if not text.startswith(EXIT_SENTINEL):
        return None
    parsed = text[len(EXIT_SENTINEL) :].strip()
    try:
        return int(parsed)
    except ValueError:
        logger.warning("Received malformed exit code sentinel '%s' from %s", parsed, hostname)
        return 1


def split_exit_code(stdout: str, hostname: str = "") -> Tuple[str, Optional[int]]:
    """Strip sentinel lines from captured stdout and return the exit code."""

    kept: list[str] = []
    exit_code: Optional[int] = None
    for line in stdout.splitlines(keepends=True):
        code = parse_exit_sentinel(line.strip(), hostname)
        if code is None:
            kept.append(line)
        else:
            exit_code = code
    return "".join(kept), exit_code


def format_output_preview(output: str, *, max_length: int = 400) -> str:
    """Return a newline-prefixed preview of command/script output."""
    if not output:
        return ""

    sanitized = output.replace("\r\n", "\n").strip()
    if not sanitized:
        return ""

    if len(sanitized) > max_length:
        preview = sanitized[: max_length - 3] + "..."
    else:
        preview = sanitized

    return "\n" + preview
