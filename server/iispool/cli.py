"""
Command-line interface for iispool.

Provides the ``restart-pool`` and ``stop-pool`` commands. Records produced by
an earlier stage (JSON array or JSON lines) can be fed through ``--input``;
results are written to stdout as one JSON object per line so they can be
piped into the next command.
"""

import json
import logging
import sys
from typing import IO, Any, Dict, List, Optional, Tuple

import click

from . import __version__
from .core.config import settings
from .core.confirmation import ConfirmationGate
from .core.models import PoolAction, PoolTarget, SessionContext, WinRMCredential
from .services.pool_control_service import pool_control_service

logger = logging.getLogger(__name__)


def configure_logging(verbosity: int) -> None:
    """Send log output to stderr so stdout stays machine readable."""

    if verbosity >= 2 or settings.debug:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def read_records(stream: IO[str]) -> List[Dict[str, Any]]:
    """Parse a JSON array, a single JSON object, or JSON lines."""

    text = stream.read().strip()
    if not text:
        return []

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        payload = []
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                payload.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise click.BadParameter(
                    f"line {number} is not valid JSON: {exc.msg}", param_hint="--input"
                ) from exc

    records = payload if isinstance(payload, list) else [payload]
    for record in records:
        if not isinstance(record, dict):
            raise click.BadParameter(
                "records must be JSON objects", param_hint="--input"
            )
    return records


def build_session(credential: Optional[str]) -> SessionContext:
    """Resolve the credential for remote calls.

    An explicit ``--credential`` prompts for its password; otherwise the
    configured WINRM_USERNAME/WINRM_PASSWORD pair is used when present.
    """

    if credential:
        password = click.prompt(f"Password for {credential}", hide_input=True, err=True)
        return SessionContext(credential=WinRMCredential(username=credential, password=password))

    if settings.has_default_credential():
        return SessionContext(
            credential=WinRMCredential(
                username=settings.winrm_username,
                password=settings.winrm_password,
            )
        )
    return SessionContext()


def _prompt(text: str) -> bool:
    return click.confirm(f"Are you sure you want to perform this action?\n{text}", err=True)


def _pool_options(func):
    options = [
        click.option(
            "--computer-name",
            "-c",
            "computer_name",
            multiple=True,
            help="Host running the pool (repeatable, defaults to this machine)",
        ),
        click.option("--name", "-n", help="Application pool name"),
        click.option(
            "--site", "-s", "sites", multiple=True, help="Site served by the pool (repeatable)"
        ),
        click.option("--pass-thru", is_flag=True, help="Write the resulting pool state"),
        click.option("--credential", metavar="USER", help="User for remote calls; prompts for the password"),
        click.option(
            "--input",
            "-i",
            "input_path",
            type=click.Path(dir_okay=False, exists=True, allow_dash=True),
            help="Records from an earlier stage (JSON or JSON lines, '-' for stdin)",
        ),
        click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation"),
        click.option("--what-if", is_flag=True, help="Describe the actions without running them"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def run_pool_command(
    ctx: click.Context,
    action: PoolAction,
    computer_name: Tuple[str, ...],
    name: Optional[str],
    sites: Tuple[str, ...],
    pass_thru: bool,
    credential: Optional[str],
    input_path: Optional[str],
    yes: bool,
    what_if: bool,
) -> None:
    """Run one pool command and stream its output."""

    records = None
    if input_path is not None:
        if input_path == "-" and not (yes or what_if):
            raise click.UsageError(
                "Confirmation prompts need an interactive stdin; pass --yes or --what-if "
                "when piping records."
            )
        with click.open_file(input_path, "r") as stream:
            records = read_records(stream)
    elif not name:
        raise click.UsageError("Provide --name or records through --input.")

    session = build_session(credential)
    gate = ConfirmationGate(
        confirm=not yes,
        what_if=what_if,
        prompt=_prompt,
        report=lambda line: click.echo(line, err=True),
    )
    failures = 0

    def on_error(target: PoolTarget, exc: Exception) -> None:
        nonlocal failures
        failures += 1
        click.echo(f"iispool: {target.computer_name}/{target.name}: {exc}", err=True)

    command = (
        pool_control_service.restart_pools
        if action is PoolAction.RECYCLE
        else pool_control_service.stop_pools
    )
    outputs = command(
        records,
        computer_name=list(computer_name),
        name=name,
        sites=list(sites) or None,
        pass_thru=pass_thru,
        session=session,
        gate=gate,
        on_error=on_error,
    )
    for item in outputs:
        click.echo(json.dumps(item.model_dump(by_alias=True, mode="json")))

    if failures:
        ctx.exit(1)


@click.group()
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (repeatable)")
@click.version_option(version=__version__, prog_name="iispool")
def cli(verbose: int) -> None:
    """Recycle and stop IIS application pools on local and remote hosts."""
    configure_logging(verbose)


@cli.command("restart-pool")
@_pool_options
@click.pass_context
def restart_pool_command(ctx: click.Context, **options) -> None:
    """Recycle application pools. Restart failures are written as output records."""
    run_pool_command(ctx, PoolAction.RECYCLE, **options)


@cli.command("stop-pool")
@_pool_options
@click.pass_context
def stop_pool_command(ctx: click.Context, **options) -> None:
    """Stop application pools."""
    run_pool_command(ctx, PoolAction.STOP, **options)


def main() -> None:
    """Console entry point."""
    cli(prog_name="iispool")


if __name__ == "__main__":
    main()
