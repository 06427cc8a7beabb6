"""Resolve pipeline records and explicit parameters into pool targets.

Records arriving from an earlier stage are loosely shaped: a pool listing
exposes ``Name``/``ComputerName``, a site listing exposes ``ApplicationPool``
and ``Server``, and objects that travelled through a remoting hop carry
``PSComputerName``. Each field is looked up through an ordered table of
candidate property names and the first non-empty value wins.

Parameter-driven input is upper-cased and, when no sites were given, the
sites are backfilled from the pool lookup collaborator. Pipeline-driven input
is passed through untouched.
"""
from __future__ import annotations

import logging
import socket
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence

from .models import PoolTarget

logger = logging.getLogger(__name__)

HOST_FIELDS = ("Server", "ComputerName", "PSComputerName")
POOL_FIELDS = ("ApplicationPool", "Name")
SITE_FIELDS = ("SiteName", "Applications", "Sites")

PoolLookup = Callable[[str, str], Mapping[str, Any]]


def local_computer_name() -> str:
    """Return the local machine name the way Windows reports it."""

    return socket.gethostname().split(".")[0].upper()


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def _read_field(record: Any, field_name: str) -> Any:
    """Read one property from a mapping or attribute bag, ignoring case."""

    if isinstance(record, Mapping):
        if field_name in record:
            return record[field_name]
        lowered = field_name.lower()
        for key, value in record.items():
            if isinstance(key, str) and key.lower() == lowered:
                return value
        return None

    value = getattr(record, field_name, None)
    if value is not None:
        return value

    lowered = field_name.lower()
    for attr in dir(record):
        if attr.lower() == lowered and not attr.startswith("_"):
            return getattr(record, attr, None)
    return None


def coalesce_field(record: Any, candidates: Sequence[str]) -> Any:
    """Return the first non-empty value among ``candidates``."""

    for field_name in candidates:
        value = _read_field(record, field_name)
        if not _is_empty(value):
            return value
    return None


def _as_site_list(value: Any) -> List[str]:
    # Windows PowerShell 5.1 can wrap arrays as {"value": [...], "Count": n}
    if isinstance(value, Mapping) and "value" in value:
        value = value["value"]
    if _is_empty(value):
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Iterable):
        return [str(item) for item in value if not _is_empty(item)]
    return [str(value)]


def target_from_record(record: Any, default_host: Optional[str] = None) -> PoolTarget:
    """Build a target from a pipeline record without transforming values."""

    host = coalesce_field(record, HOST_FIELDS)
    if host is None:
        host = default_host if default_host is not None else local_computer_name()

    name = coalesce_field(record, POOL_FIELDS)
    sites = coalesce_field(record, SITE_FIELDS)

    return PoolTarget(
        computer_name=str(host),
        name="" if name is None else str(name),
        sites=_as_site_list(sites),
    )


def target_from_parameters(
    computer_name: Optional[str],
    name: Optional[str],
    sites: Optional[Sequence[str]] = None,
    lookup: Optional[PoolLookup] = None,
) -> PoolTarget:
    """Build a target from explicit parameters, backfilling sites when absent."""

    host = (computer_name or local_computer_name()).upper()
    pool_name = name or ""
    site_list = [site.upper() for site in _as_site_list(sites)]

    # Backfilled sites keep the casing the lookup returned
    if not site_list and lookup is not None:
        site_list = _lookup_sites(lookup, host, pool_name)

    return PoolTarget(computer_name=host, name=pool_name, sites=site_list)


def _lookup_sites(lookup: PoolLookup, host: str, pool_name: str) -> List[str]:
    try:
        pool_info = lookup(host, pool_name)
    except Exception as exc:
        logger.warning(
            "Site lookup for pool %s on %s failed; continuing without sites: %s",
            pool_name,
            host,
            exc,
        )
        return []

    if not pool_info:
        return []
    return _as_site_list(_read_field(pool_info, "Applications"))


def resolve_targets(
    records: Optional[Iterable[Any]] = None,
    *,
    computer_name: Optional[Sequence[str]] = None,
    name: Optional[str] = None,
    sites: Optional[Sequence[str]] = None,
    lookup: Optional[PoolLookup] = None,
) -> Iterator[PoolTarget]:
    """Yield one target per unit of work.

    With ``records`` each record is one unit of work; a record without a
    host property falls back to the first ``computer_name`` entry. Without
    records every requested host is one unit of work.
    """

    hosts = [host for host in (computer_name or []) if not _is_empty(host)]

    if records is not None:
        default_host = hosts[0] if hosts else None
        for record in records:
            yield target_from_record(record, default_host=default_host)
        return

    for host in hosts or [None]:
        yield target_from_parameters(host, name, sites, lookup)
