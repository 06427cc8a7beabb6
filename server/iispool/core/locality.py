"""Classify target hosts as local or remote."""
from __future__ import annotations

import os
import socket
from functools import lru_cache
from typing import FrozenSet, Iterable, Optional

from .config import settings

LOOPBACK_ALIASES = ("localhost", ".", "127.0.0.1", "::1")


@lru_cache(maxsize=1)
def _machine_names() -> FrozenSet[str]:
    names = set()
    hostname = socket.gethostname()
    if hostname:
        names.add(hostname)
        names.add(hostname.split(".")[0])
    try:
        fqdn = socket.getfqdn()
    except OSError:
        fqdn = ""
    if fqdn:
        names.add(fqdn)
    computer_name = os.environ.get("COMPUTERNAME")
    if computer_name:
        names.add(computer_name)
    return frozenset(name.lower() for name in names)


def local_aliases(extra: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    """Return every lower-cased name that identifies this machine."""

    aliases = set(_machine_names())
    aliases.update(LOOPBACK_ALIASES)
    aliases.update(alias.lower() for alias in settings.get_local_host_aliases_list())
    if extra:
        aliases.update(alias.lower() for alias in extra)
    return frozenset(aliases)


def is_local_host(host: Optional[str], aliases: Optional[Iterable[str]] = None) -> bool:
    """Return True when ``host`` names the executing machine.

    ``aliases`` overrides the discovered machine names, which keeps the
    classification pure for callers that already hold the alias set.
    """

    if not host or not host.strip():
        return False

    known = local_aliases() if aliases is None else {alias.lower() for alias in aliases}
    return host.strip().lower() in known
