"""WinRM service for executing PowerShell commands on IIS hosts."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Iterable, Iterator, Optional

from pypsrp.exceptions import (
    AuthenticationError,
    PSInvocationState,
    WinRMError,
    WinRMTransportError as PyWinRMTransportError,
)
from pypsrp.powershell import PowerShell, RunspacePool
from pypsrp.wsman import WSMan

from ..core.config import settings
from ..core.models import WinRMCredential
from .powershell import format_output_preview, parse_exit_sentinel, wrap_command

logger = logging.getLogger(__name__)


class WinRMServiceError(RuntimeError):
    """Base exception for WinRM service failures."""


class WinRMAuthenticationError(WinRMServiceError):
    """Raised when authentication to a host fails."""


class WinRMTransportError(WinRMServiceError):
    """Raised for lower-level transport failures."""


@dataclass
class _PSRPStreamCursor:
    """Track consumption of PowerShell pipeline and error streams."""

    hostname: str
    on_chunk: Callable[[str, str], None]
    output_index: int = 0
    error_index: int = 0
    information_index: int = 0
    exit_code: Optional[int] = None

    def drain(self, ps: PowerShell) -> None:
        """Emit new output/error records as text chunks."""

        for item in ps.output[self.output_index :]:
            self._emit("stdout", self._stringify(item))
        self.output_index = len(ps.output)

        # Write-Host and Write-Information land on the information stream
        for record in ps.streams.information[self.information_index :]:
            self._emit("stdout", self._stringify_information(record))
        self.information_index = len(ps.streams.information)

        for item in ps.streams.error[self.error_index :]:
            self._emit("stderr", self._stringify(item))
        self.error_index = len(ps.streams.error)

    def _emit(self, stream: str, text: str) -> None:
        if not text:
            return
        code = parse_exit_sentinel(text.strip(), self.hostname)
        if code is not None:
            self.exit_code = code
            return
        if not text.endswith("\n"):
            text += "\n"
        self.on_chunk(stream, text)

    @staticmethod
    def _stringify(item: Any) -> str:
        """Best-effort string conversion for PSRP data."""

        if item is None:
            return ""
        if isinstance(item, str):
            return item

        formatter = getattr(item, "to_string", None)
        if callable(formatter):
            try:
                text = formatter()
                if text:
                    return text
            except Exception:  # pragma: no cover - defensive logging
                logger.debug("Failed to format PSRP object via to_string", exc_info=True)
        elif isinstance(formatter, str) and formatter.strip():
            return formatter

        value = getattr(item, "value", None)
        if isinstance(value, str):
            return value

        return str(item)

    @staticmethod
    def _stringify_information(record: Any) -> str:
        """Convert an information stream record into printable text."""

        message_data = getattr(record, "message_data", None)
        if isinstance(message_data, bytes):
            message_data = message_data.decode("utf-8", errors="ignore")
        if isinstance(message_data, str) and message_data.strip():
            return message_data.rstrip("\r\n")
        if isinstance(message_data, dict):
            for key in ("message", "Message"):
                value = message_data.get(key)
                if isinstance(value, str) and value.strip():
                    return value.rstrip("\r\n")

        adapted = getattr(message_data, "adapted_properties", None)
        if isinstance(adapted, dict):
            for key, value in adapted.items():
                if key.lower() == "message" and isinstance(value, str) and value.strip():
                    return value.rstrip("\r\n")

        return _PSRPStreamCursor._stringify(message_data if message_data is not None else record)


class WinRMService:
    """Service for managing WinRM connections to IIS hosts."""

    @contextmanager
    def _session(
        self, hostname: str, credential: Optional[WinRMCredential] = None
    ) -> Iterator[RunspacePool]:
        """Yield an opened runspace pool for the target host."""

        wsman = self._create_session(hostname, credential)
        pool = self._open_runspace_pool(hostname, wsman)
        try:
            yield pool
        finally:
            try:
                pool.close()
            finally:
                self._dispose_session(wsman)

    def _create_session(
        self, hostname: str, credential: Optional[WinRMCredential] = None
    ) -> WSMan:
        """Create a new WSMan session for the host."""

        connection_timeout = int(max(1.0, float(settings.winrm_connection_timeout)))
        operation_timeout = int(max(1.0, float(settings.winrm_operation_timeout)))
        read_timeout = int(max(1.0, float(settings.winrm_read_timeout)))

        username = credential.username if credential else None
        password = credential.password.get_secret_value() if credential else None
        transport = (settings.winrm_transport or "negotiate").strip().lower()

        logger.info(
            "Creating WinRM (PSRP) session to %s (port=%s, transport=%s, username=%s)",
            hostname,
            settings.winrm_port,
            transport,
            username or "<current identity>",
        )
        logger.debug(
            "WSMan timeouts for %s -> connection=%ss, operation=%ss, read=%ss",
            hostname,
            connection_timeout,
            operation_timeout,
            read_timeout,
        )

        try:
            session = WSMan(
                hostname,
                port=settings.winrm_port,
                username=username,
                password=password,
                auth=transport,
                ssl=settings.use_ssl(),
                cert_validation=settings.winrm_cert_validation,
                connection_timeout=connection_timeout,
                operation_timeout=operation_timeout,
                read_timeout=read_timeout,
            )
        except AuthenticationError as exc:  # pragma: no cover - network heavy
            logger.error("Authentication failed while connecting to %s: %s", hostname, exc)
            raise WinRMAuthenticationError(str(exc)) from exc
        except (PyWinRMTransportError, WinRMError, ValueError) as exc:  # pragma: no cover - network heavy
            logger.error("Failed to create WSMan session to %s: %s", hostname, exc)
            raise WinRMTransportError(str(exc)) from exc

        logger.debug("Created WSMan session to %s", hostname)
        return session

    def execute_ps_command(
        self,
        hostname: str,
        command: str,
        credential: Optional[WinRMCredential] = None,
    ) -> tuple[str, str, int]:
        """Execute an arbitrary PowerShell command on a host."""

        truncated = command.replace("\n", " ")
        if len(truncated) > 120:
            truncated = f"{truncated[:117]}..."
        logger.info("Executing PowerShell command on %s: %s", hostname, truncated)
        logger.debug("Full PowerShell command on %s: %s", hostname, command)

        script = wrap_command(command)
        return self._execute(hostname, script, credential)

    def _execute(
        self,
        hostname: str,
        script: str,
        credential: Optional[WinRMCredential] = None,
    ) -> tuple[str, str, int]:
        """Execute a script synchronously and return collected output."""

        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []

        def _collect(stream: str, payload: str) -> None:
            if stream == "stdout":
                stdout_chunks.append(payload)
            else:
                stderr_chunks.append(payload)

        cursor = _PSRPStreamCursor(hostname=hostname, on_chunk=_collect)

        with self._session(hostname, credential) as pool:
            exit_code, duration = self._invoke(pool, hostname, script, cursor)

        stdout = self._join_chunks(stdout_chunks)
        stderr = self._join_chunks(stderr_chunks)

        logger.info(
            "Command on %s completed in %.2fs with exit code %s (stdout=%d bytes, stderr=%d bytes)",
            hostname,
            duration,
            exit_code,
            len(stdout.encode("utf-8")),
            len(stderr.encode("utf-8")),
        )
        stdout_preview = format_output_preview(stdout)
        if stdout_preview:
            logger.debug("Command stdout preview on %s:%s", hostname, stdout_preview)

        stderr_preview = format_output_preview(stderr)
        if stderr_preview:
            level = logger.warning if exit_code != 0 else logger.info
            level("Command stderr preview on %s:%s", hostname, stderr_preview)

        if exit_code != 0:
            logger.warning("Command on %s exited with non-zero status %s", hostname, exit_code)

        return stdout, stderr, exit_code

    def _invoke(
        self,
        pool: RunspacePool,
        hostname: str,
        script: str,
        cursor: _PSRPStreamCursor,
    ) -> tuple[int, float]:
        """Run the provided script in the supplied runspace pool."""

        ps = PowerShell(pool)
        ps.add_script(script)

        start_time = perf_counter()
        completed = False
        poll_timeout = int(
            max(1.0, min(float(settings.winrm_poll_interval_seconds), float(settings.winrm_operation_timeout)))
        )
        try:
            ps.begin_invoke()
            while True:
                ps.poll_invoke(timeout=poll_timeout)
                cursor.drain(ps)
                if self._state_complete(getattr(ps, "state", None)):
                    break
            ps.end_invoke()
            completed = True
            cursor.drain(ps)
        except AuthenticationError as exc:  # pragma: no cover - network heavy
            logger.error("Authentication failure while executing command on %s: %s", hostname, exc)
            raise WinRMAuthenticationError(str(exc)) from exc
        except (WinRMError, OSError) as exc:  # pragma: no cover - network heavy
            logger.error("WinRM execution failed on %s: %s", hostname, exc)
            raise WinRMTransportError(str(exc)) from exc
        finally:
            if not completed:
                try:
                    ps.end_invoke()
                except Exception:  # pragma: no cover - best effort cleanup
                    logger.debug("Failed to end PowerShell invocation cleanly", exc_info=True)

        duration = perf_counter() - start_time
        exit_code = cursor.exit_code
        if exit_code is None:
            exit_code = 0 if not getattr(ps, "had_errors", False) else 1

        logger.debug(
            "PowerShell invocation on %s finished in %.2fs (state=%s, had_errors=%s)",
            hostname,
            duration,
            self._normalize_state(getattr(ps, "state", None)),
            getattr(ps, "had_errors", False),
        )

        return exit_code, duration

    @staticmethod
    def _normalize_state(state: object) -> str:
        """Return a normalized string representation of a PS invocation state."""

        if isinstance(state, PSInvocationState):
            return state.name.lower()
        if state is None:
            return "unknown"
        return str(state).lower()

    @staticmethod
    def _state_complete(state: object) -> bool:
        """Return True when the invocation state indicates completion."""

        terminal_states = {
            getattr(PSInvocationState, name, None)
            for name in ("COMPLETED", "FAILED", "STOPPED", "DISCONNECTED")
        }
        terminal_states.discard(None)
        if state in terminal_states:
            return True

        normalized = WinRMService._normalize_state(state)
        return normalized in {"completed", "failed", "stopped", "disconnected"}

    @staticmethod
    def _join_chunks(chunks: Iterable[str]) -> str:
        """Combine collected string chunks preserving order."""

        return "".join(chunk for chunk in chunks if chunk)

    def _dispose_session(self, session: WSMan) -> None:
        """Attempt to close transport resources for a WSMan session."""

        closer = getattr(session, "close", None)
        if callable(closer):
            try:
                closer()
            except Exception:  # pragma: no cover - best effort cleanup
                logger.debug("Failed to close WSMan session cleanly", exc_info=True)

    def _open_runspace_pool(self, hostname: str, wsman: WSMan) -> RunspacePool:
        """Open a runspace pool and translate connection errors."""

        start_time = perf_counter()
        pool = RunspacePool(wsman)
        try:
            pool.open()
        except AuthenticationError as exc:  # pragma: no cover - network heavy
            logger.error(
                "Authentication failure while opening runspace pool on %s: %s",
                hostname,
                exc,
            )
            self._dispose_session(wsman)
            raise WinRMAuthenticationError(str(exc)) from exc
        except (PyWinRMTransportError, WinRMError, OSError) as exc:  # pragma: no cover - network heavy
            logger.error(
                "Transport error while opening runspace pool on %s: %s",
                hostname,
                exc,
            )
            self._dispose_session(wsman)
            raise WinRMTransportError(str(exc)) from exc

        logger.debug("Runspace pool on %s opened in %.2fs", hostname, perf_counter() - start_time)
        return pool


# Global WinRM service instance
winrm_service = WinRMService()

__all__ = [
    "WinRMService",
    "winrm_service",
    "WinRMServiceError",
    "WinRMAuthenticationError",
    "WinRMTransportError",
]
