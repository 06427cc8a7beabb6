"""Confirmation gate applied before destructive pool actions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .models import PoolAction, PoolTarget

logger = logging.getLogger(__name__)

Prompt = Callable[[str], bool]

ACTION_LABELS = {
    PoolAction.RECYCLE: "Restart-Pool",
    PoolAction.STOP: "Stop-Pool",
}


def _decline(_: str) -> bool:
    return False


@dataclass
class ConfirmationGate:
    """Decide whether an action may run against a target.

    ``confirm=False`` is the scriptable override that approves without
    asking. ``what_if`` describes the action and never approves.
    Without a prompt callable every interactive confirmation is declined.
    """

    confirm: bool = True
    what_if: bool = False
    prompt: Optional[Prompt] = None
    report: Optional[Callable[[str], None]] = None

    @classmethod
    def always(cls) -> "ConfirmationGate":
        """Return a gate that approves every action without prompting."""

        return cls(confirm=False)

    @staticmethod
    def message(action: PoolAction, target: PoolTarget) -> str:
        return (
            f'Performing the operation "{ACTION_LABELS[action]}" '
            f'on target "{target.describe()}".'
        )

    def should_process(self, action: PoolAction, target: PoolTarget) -> bool:
        text = self.message(action, target)

        if self.what_if:
            line = f"What if: {text}"
            logger.info(line)
            if self.report is not None:
                self.report(line)
            return False

        if not self.confirm:
            return True

        approved = (self.prompt or _decline)(text)
        if not approved:
            logger.info("Skipped %s for pool %s on %s", action.value, target.name, target.computer_name)
        return approved
