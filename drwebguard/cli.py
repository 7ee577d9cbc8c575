"""drwebguard CLI
-----------------
Entry-point for the Malice Dr.WEB AntiVirus plugin.

Commands:

* ``drwebguard scan FILE``: scan one file and print JSON (or a Markdown
  table), optionally storing the result in Elasticsearch and POSTing it to
  the Malice webhook.
* ``drwebguard update``: update virus definitions.
* ``drwebguard web``: run the HTTP scan service.

Fatal errors (license, engine metadata, missing binaries, storage) are logged
and terminate the process with exit status 1.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from drwebguard import __version__
from drwebguard.config import get_settings
from drwebguard.core.exceptions import DrWebError
from drwebguard.core.models import ScanOutcome, ScanTarget
from drwebguard.core.scanner import DrWebScanner
from drwebguard.report import render_markdown
from drwebguard.services.store import ElasticsearchStore
from drwebguard.services.webhook import WebhookNotifier

app: typer.Typer = typer.Typer(
    add_completion=False,
    help="Malice Dr.WEB AntiVirus Plugin",
)
console: Console = Console()
err_console: Console = Console(stderr=True)

log = logging.getLogger("drwebguard")

# ─────────────────────────────────────────────────────────────────────────────
# Helpers (not exposed as CLI commands)
# ─────────────────────────────────────────────────────────────────────────────


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else get_settings().LOG_LEVEL.upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logging.getLogger().setLevel(level)


def _fatal(exc: Exception) -> None:
    log.error("%s plugin=drweb category=av", exc)
    err_console.print(f"[red]{exc}[/]")
    raise typer.Exit(code=1)


async def _scan(
    target: ScanTarget,
    timeout: int,
    table: bool,
    callback: bool,
    proxy: bool,
    elasticsearch: str,
) -> None:
    settings = get_settings()
    scanner = DrWebScanner.from_settings(settings)
    outcome = await scanner.scan(target, timeout=timeout)
    outcome.markdown = render_markdown(outcome)
    scan_id = settings.MALICE_SCANID or target.sha256

    if elasticsearch:
        store = ElasticsearchStore(elasticsearch, index=settings.MALICE_ELASTICSEARCH_INDEX)
        await store.store_plugin_results(scan_id, outcome.as_dict())

    if table:
        console.print(outcome.markdown, markup=False, highlight=False, soft_wrap=True, end="")
        return

    outcome.markdown = ""
    if callback:
        notifier = WebhookNotifier(
            settings.MALICE_ENDPOINT,
            proxy=settings.MALICE_PROXY if proxy else None,
        )
        await notifier.send(scan_id, outcome.to_json_dict())
        return

    _print_json(outcome)


def _print_json(outcome: ScanOutcome) -> None:
    console.print(json.dumps(outcome.to_json_dict()), markup=False, highlight=False, soft_wrap=True)


# ─────────────────────────────────────────────────────────────────────────────
# Typer commands
# ─────────────────────────────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        build_time = get_settings().BUILD_TIME
        console.print(f"drwebguard {__version__}, BuildTime: {build_time}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Malice Dr.WEB AntiVirus Plugin."""


@app.command()
def scan(
    file: Path = typer.Argument(..., help="File to scan."),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="verbose output"),
    table: bool = typer.Option(False, "--table", "-t", help="output as Markdown table"),
    callback: bool = typer.Option(
        False, "--callback", "-c", help="POST results back to Malice webhook"
    ),
    proxy: bool = typer.Option(
        False, "--proxy", "-x", help="proxy settings for Malice webhook endpoint"
    ),
    timeout: Optional[int] = typer.Option(
        None, "--timeout", help="malice plugin timeout (in seconds)", envvar="MALICE_TIMEOUT"
    ),
    elasticsearch: Optional[str] = typer.Option(
        None,
        "--elasticsearch",
        help="elasticsearch url for Malice to store results",
        envvar="MALICE_ELASTICSEARCH_URL",
    ),
) -> None:
    """Scan FILE with Dr.WEB."""
    _configure_logging(verbose)
    settings = get_settings()

    try:
        target = ScanTarget.from_path(file)
    except FileNotFoundError as exc:
        _fatal(exc)

    try:
        asyncio.run(
            _scan(
                target,
                timeout=timeout or settings.MALICE_TIMEOUT,
                table=table,
                callback=callback,
                proxy=proxy,
                elasticsearch=elasticsearch or settings.MALICE_ELASTICSEARCH_URL,
            )
        )
    except DrWebError as exc:
        _fatal(exc)


@app.command()
def update(
    verbose: bool = typer.Option(False, "--verbose", "-V", help="verbose output"),
) -> None:
    """Update virus definitions."""
    _configure_logging(verbose)
    scanner = DrWebScanner.from_settings(get_settings())
    console.print("Updating Dr.WEB...")
    try:
        result = asyncio.run(scanner.update())
    except (DrWebError, OSError) as exc:
        _fatal(exc)
    console.print(result.stdout, markup=False, highlight=False, soft_wrap=True, end="")


@app.command()
def web(
    verbose: bool = typer.Option(False, "--verbose", "-V", help="verbose output"),
) -> None:
    """Create a Dr.WEB scan web service."""
    import uvicorn

    _configure_logging(verbose)
    settings = get_settings()
    uvicorn.run(
        "drwebguard.main:app",
        host=settings.WEB_HOST,
        port=settings.WEB_PORT,
        log_level="debug" if verbose else settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    app()
