"""Pool lifecycle operations executed locally or over WinRM.

Both executors run the same WebAdministration scripts. The scripts print a
single compressed JSON array, which keeps the output identical whether it
came back through ``powershell.exe`` or a PSRP runspace.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..core.locality import is_local_host
from ..core.models import PoolAction, PoolState, PoolTarget, SessionContext, WinRMCredential
from .local_shell_service import LocalShellService, local_shell_service
from .powershell import ps_bool, ps_quote
from .winrm_service import WinRMService, winrm_service

logger = logging.getLogger(__name__)

# Properties a remoting hop attaches to every object it hands back
TRANSPORT_METADATA_FIELDS = ("RunspaceId", "PSShowComputerName")

_POOL_RECORD_FUNCTION = """function ConvertTo-PoolRecord($pool) {
    [pscustomobject]@{
        Name = [string]$pool.Name
        State = [string]$pool.State
        ComputerName = $env:COMPUTERNAME
        ManagedRuntimeVersion = [string]$pool.managedRuntimeVersion
        ManagedPipelineMode = [string]$pool.managedPipelineMode
        StartMode = [string]$pool.startMode
    }
}"""

_EMIT_RESULTS = "ConvertTo-Json -InputObject @($results) -Compress -Depth 4"


class PoolCommandError(RuntimeError):
    """Raised when a pool script cannot run or returns unusable output."""

    def __init__(self, action: str, hostname: str, pool_name: str, message: str):
        super().__init__(message)
        self.action = action
        self.hostname = hostname
        self.pool_name = pool_name
        self.message = message


def _script(pool_name: str, body: List[str], **variables: str) -> str:
    lines = [
        "Import-Module WebAdministration -ErrorAction Stop",
        f"$poolName = {ps_quote(pool_name)}",
    ]
    lines.extend(f"${key} = {value}" for key, value in variables.items())
    lines.append(_POOL_RECORD_FUNCTION)
    lines.extend(body)
    return "\n".join(lines)


def _started_query(state_variable: str = "$stateFilter") -> str:
    return (
        "@(Get-ChildItem -Path 'IIS:\\AppPools' -ErrorAction SilentlyContinue | "
        "Where-Object { $_.Name -eq $poolName -and "
        f"(-not {state_variable} -or [string]$_.State -eq {state_variable}) }} | "
        "ForEach-Object { ConvertTo-PoolRecord $_ })"
    )


def build_recycle_script(pool_name: str, pass_thru: bool) -> str:
    """Restart the pool, turning a failure into an output record."""

    return _script(
        pool_name,
        [
            "$results = @()",
            "try {",
            "    Restart-WebAppPool -Name $poolName -ErrorAction Stop",
            "} catch {",
            "    $results += [pscustomobject]@{",
            "        ComputerName = $env:COMPUTERNAME",
            "        Name = $poolName",
            "        Action = 'recycle'",
            "        Error = $_.Exception.Message",
            "        ErrorId = $_.FullyQualifiedErrorId",
            "    }",
            "}",
            "if ($passThru) {",
            f"    $results += {_started_query()}",
            "}",
            _EMIT_RESULTS,
        ],
        passThru=ps_bool(pass_thru),
        stateFilter=ps_quote(PoolState.STARTED.value),
    )


def build_stop_script(pool_name: str, pass_thru: bool) -> str:
    """Stop the pool with errors suppressed at the source."""

    return _script(
        pool_name,
        [
            "$results = @(Stop-WebAppPool -Name $poolName -ErrorAction SilentlyContinue "
            "-Passthru:$passThru | ForEach-Object { ConvertTo-PoolRecord $_ })",
            _EMIT_RESULTS,
        ],
        passThru=ps_bool(pass_thru),
    )


def build_query_script(pool_name: str, state_filter: Optional[PoolState]) -> str:
    state = ps_quote(state_filter.value) if state_filter else "$null"
    return _script(
        pool_name,
        [f"$results = {_started_query()}", _EMIT_RESULTS],
        stateFilter=state,
    )


def build_lookup_script(pool_name: str) -> str:
    """List the sites whose root or child applications run in the pool."""

    return _script(
        pool_name,
        [
            "$sites = @(Get-Website | Where-Object { $_.applicationPool -eq $poolName } | "
            "ForEach-Object { $_.Name })",
            "$sites += @(Get-WebApplication | Where-Object { $_.applicationPool -eq $poolName } | "
            "ForEach-Object { $_.GetParentElement()['name'] })",
            "$results = [pscustomobject]@{",
            "    ComputerName = $env:COMPUTERNAME",
            "    Name = $poolName",
            "    Applications = @($sites | Select-Object -Unique)",
            "}",
            _EMIT_RESULTS,
        ],
    )


def strip_transport_metadata(item: Dict[str, Any]) -> Dict[str, Any]:
    """Drop remoting session properties from a returned object."""

    return {key: value for key, value in item.items() if key not in TRANSPORT_METADATA_FIELDS}


class PoolExecutor(ABC):
    """Pool lifecycle contract shared by the local and remote paths."""

    location = "local"

    def __init__(self, hostname: str) -> None:
        self.hostname = hostname

    @abstractmethod
    def _run(self, command: str) -> tuple[str, str, int]:
        """Run a PowerShell command and return stdout, stderr and exit code."""

    def _invoke(self, action: str, pool_name: str, command: str) -> List[Dict[str, Any]]:
        logger.info(
            "Running %s for pool %s on %s (%s)", action, pool_name, self.hostname, self.location
        )
        stdout, stderr, exit_code = self._run(command)
        lines = [line for line in (stdout or "").lstrip("\ufeff").splitlines() if line.strip()]
        raw = lines[-1].strip() if lines else ""

        if exit_code != 0:
            preview = (stderr or "").strip() or raw
            message = preview[:500] if preview else "Unknown error"
            raise PoolCommandError(action, self.hostname, pool_name, message)

        if not raw:
            return []

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug("Raw %s output from %s: %s", action, self.hostname, stdout)
            raise PoolCommandError(
                action, self.hostname, pool_name, f"Unparseable pool output: {exc}"
            ) from exc

        items = payload if isinstance(payload, list) else [payload]
        return [item for item in items if isinstance(item, dict)]

    def recycle_pool(self, name: str, pass_thru: bool = False) -> List[Dict[str, Any]]:
        """Restart a pool and optionally return it when it is Started."""

        return self._invoke(PoolAction.RECYCLE.value, name, build_recycle_script(name, pass_thru))

    def restart_pool(self, name: str) -> None:
        """Restart a pool, raising the failure the recycle script reported."""

        for item in self.recycle_pool(name, pass_thru=False):
            if "Error" in item:
                raise PoolCommandError(
                    PoolAction.RECYCLE.value,
                    self.hostname,
                    name,
                    str(item.get("Error") or "Unknown error"),
                )

    def stop_pool(self, name: str, pass_thru: bool = False) -> List[Dict[str, Any]]:
        return self._invoke(PoolAction.STOP.value, name, build_stop_script(name, pass_thru))

    def query_pool(
        self, name: str, state_filter: Optional[PoolState] = PoolState.STARTED
    ) -> List[Dict[str, Any]]:
        return self._invoke("query", name, build_query_script(name, state_filter))

    def lookup_pool(self, name: str) -> Dict[str, Any]:
        """Return ``{"Applications": [...]}`` for the pool."""

        items = self._invoke("lookup", name, build_lookup_script(name))
        if not items:
            return {"Applications": []}
        info = dict(items[0])
        applications = info.get("Applications")
        # Windows PowerShell 5.1 can wrap arrays as {"value": [...], "Count": n}
        if isinstance(applications, dict) and "value" in applications:
            applications = applications["value"]
        if applications is None:
            applications = []
        elif isinstance(applications, str):
            applications = [applications]
        info["Applications"] = list(applications)
        return info


class LocalPoolExecutor(PoolExecutor):
    """Run pool scripts in a local PowerShell process."""

    location = "local"

    def __init__(self, hostname: str, shell: Optional[LocalShellService] = None) -> None:
        super().__init__(hostname)
        self._shell = shell or local_shell_service

    def _run(self, command: str) -> tuple[str, str, int]:
        return self._shell.execute_ps_command(command)


class RemotePoolExecutor(PoolExecutor):
    """Run pool scripts on another host over WinRM."""

    location = "remote"

    def __init__(
        self,
        hostname: str,
        credential: Optional[WinRMCredential] = None,
        winrm: Optional[WinRMService] = None,
    ) -> None:
        super().__init__(hostname)
        self.credential = credential
        self._winrm = winrm or winrm_service

    def _run(self, command: str) -> tuple[str, str, int]:
        return self._winrm.execute_ps_command(self.hostname, command, credential=self.credential)

    def _invoke(self, action: str, pool_name: str, command: str) -> List[Dict[str, Any]]:
        return [strip_transport_metadata(item) for item in super()._invoke(action, pool_name, command)]


def select_executor(
    target: PoolTarget,
    session: Optional[SessionContext] = None,
    *,
    aliases: Optional[Iterable[str]] = None,
    winrm: Optional[WinRMService] = None,
    shell: Optional[LocalShellService] = None,
) -> PoolExecutor:
    """Pick the execution path for the target's own host."""

    if is_local_host(target.computer_name, aliases):
        return LocalPoolExecutor(target.computer_name, shell=shell)

    credential = session.credential if session else None
    return RemotePoolExecutor(target.computer_name, credential=credential, winrm=winrm)


__all__ = [
    "LocalPoolExecutor",
    "PoolCommandError",
    "PoolExecutor",
    "RemotePoolExecutor",
    "TRANSPORT_METADATA_FIELDS",
    "select_executor",
    "strip_transport_metadata",
]
