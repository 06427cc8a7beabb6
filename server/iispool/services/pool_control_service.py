"""Service for recycling and stopping IIS application pools."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from ..core.confirmation import ConfirmationGate
from ..core.models import (
    PoolAction,
    PoolActionFailure,
    PoolStatus,
    PoolTarget,
    SessionContext,
)
from ..core.normalizer import resolve_targets
from .local_shell_service import LocalShellError, LocalShellService
from .pool_executor import PoolCommandError, PoolExecutor, select_executor
from .winrm_service import WinRMService, WinRMServiceError

logger = logging.getLogger(__name__)

PoolOutput = Union[PoolStatus, PoolActionFailure]
ErrorHandler = Callable[[PoolTarget, Exception], None]

# Failures that end one record and let the next one run
RECORD_ERRORS = (PoolCommandError, WinRMServiceError, LocalShellError)


def _log_record_error(target: PoolTarget, exc: Exception) -> None:
    logger.error(
        "Pool action for %s on %s failed: %s", target.name, target.computer_name, exc
    )


class PoolControlService:
    """Run Restart-Pool and Stop-Pool over a stream of records."""

    def __init__(
        self,
        winrm: Optional[WinRMService] = None,
        shell: Optional[LocalShellService] = None,
        local_aliases: Optional[Iterable[str]] = None,
    ) -> None:
        self._winrm = winrm
        self._shell = shell
        self._local_aliases = list(local_aliases) if local_aliases is not None else None

    def executor_for(
        self, target: PoolTarget, session: Optional[SessionContext] = None
    ) -> PoolExecutor:
        return select_executor(
            target,
            session,
            aliases=self._local_aliases,
            winrm=self._winrm,
            shell=self._shell,
        )

    def lookup_pool(
        self, computer_name: str, name: str, session: Optional[SessionContext] = None
    ) -> Dict[str, Any]:
        """Return the current site list for a pool on a host."""

        target = PoolTarget(computer_name=computer_name, name=name)
        return self.executor_for(target, session).lookup_pool(name)

    def restart_pools(
        self,
        records: Optional[Iterable[Any]] = None,
        *,
        computer_name: Optional[Sequence[str]] = None,
        name: Optional[str] = None,
        sites: Optional[Sequence[str]] = None,
        pass_thru: bool = False,
        session: Optional[SessionContext] = None,
        gate: Optional[ConfirmationGate] = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> Iterator[PoolOutput]:
        """Recycle each resolved pool; restart failures are yielded as data."""

        return self._run(
            PoolAction.RECYCLE,
            records,
            computer_name=computer_name,
            name=name,
            sites=sites,
            pass_thru=pass_thru,
            session=session,
            gate=gate,
            on_error=on_error,
        )

    def stop_pools(
        self,
        records: Optional[Iterable[Any]] = None,
        *,
        computer_name: Optional[Sequence[str]] = None,
        name: Optional[str] = None,
        sites: Optional[Sequence[str]] = None,
        pass_thru: bool = False,
        session: Optional[SessionContext] = None,
        gate: Optional[ConfirmationGate] = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> Iterator[PoolOutput]:
        """Stop each resolved pool; output only with ``pass_thru``."""

        return self._run(
            PoolAction.STOP,
            records,
            computer_name=computer_name,
            name=name,
            sites=sites,
            pass_thru=pass_thru,
            session=session,
            gate=gate,
            on_error=on_error,
        )

    def _run(
        self,
        action: PoolAction,
        records: Optional[Iterable[Any]],
        *,
        computer_name: Optional[Sequence[str]],
        name: Optional[str],
        sites: Optional[Sequence[str]],
        pass_thru: bool,
        session: Optional[SessionContext],
        gate: Optional[ConfirmationGate],
        on_error: Optional[ErrorHandler],
    ) -> Iterator[PoolOutput]:
        gate = gate or ConfirmationGate()
        handle_error = on_error or _log_record_error

        def lookup(host: str, pool_name: str) -> Mapping[str, Any]:
            return self.lookup_pool(host, pool_name, session)

        targets = resolve_targets(
            records,
            computer_name=computer_name,
            name=name,
            sites=sites,
            lookup=lookup,
        )

        for target in targets:
            if not gate.should_process(action, target):
                continue

            executor = self.executor_for(target, session)
            try:
                if action is PoolAction.RECYCLE:
                    items = executor.recycle_pool(target.name, pass_thru)
                else:
                    items = executor.stop_pool(target.name, pass_thru)
            except RECORD_ERRORS as exc:
                handle_error(target, exc)
                continue

            outputs = self._to_outputs(action, target, items)
            logger.info(
                "Pool action %s for %s on %s finished (%d output item(s))",
                action.value,
                target.name,
                target.computer_name,
                len(outputs),
            )
            yield from outputs

    @staticmethod
    def _to_outputs(
        action: PoolAction, target: PoolTarget, items: List[Dict[str, Any]]
    ) -> List[PoolOutput]:
        outputs: List[PoolOutput] = []
        for item in items:
            if "Error" in item:
                failure = PoolActionFailure(
                    computer_name=item.get("ComputerName") or target.computer_name,
                    name=item.get("Name") or target.name,
                    action=action,
                    error=str(item.get("Error") or "Unknown error"),
                    error_id=item.get("ErrorId"),
                )
                logger.warning(
                    "Pool %s on %s reported a %s failure: %s",
                    failure.name,
                    failure.computer_name,
                    action.value,
                    failure.error,
                )
                outputs.append(failure)
                continue

            data = dict(item)
            if not data.get("ComputerName"):
                data["ComputerName"] = target.computer_name
            outputs.append(PoolStatus.model_validate(data))
        return outputs


# Global service instance
pool_control_service = PoolControlService()

__all__ = [
    "PoolControlService",
    "PoolOutput",
    "RECORD_ERRORS",
    "pool_control_service",
]
