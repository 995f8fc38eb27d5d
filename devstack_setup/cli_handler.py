# devstack_setup/cli_handler.py
# -*- coding: utf-8 -*-
"""
Command line interface of the stack bootstrap.
"""

import logging
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import click

from devstack_common.api_client import ApiClient
from devstack_common.core_utils import setup_logging
from devstack_common.errors import ConfigurationError, ContractViolation
from devstack_common.file_utils import (
    CREDENTIALS_FILE_NAME,
    LOG_FILE_NAME,
    SUMMARY_FILE_NAME,
    CredentialsFile,
    create_run_directory,
)
from devstack_common.metrics import BootstrapMetrics
from devstack_modular.orchestrator import (
    EXIT_CONTRACT_VIOLATION,
    BootstrapOrchestrator,
    build_plan,
    import_configurators,
)
from devstack_modular.registry import ConfiguratorRegistry
from devstack_setup.config_loader import load_app_settings

module_logger = logging.getLogger(__name__)

import_configurators()


@contextmanager
def cancel_on_sigint(cancel_event: threading.Event) -> Iterator[None]:
    """
    Turn Ctrl+C into a cancellation request for the duration of the block.

    A second Ctrl+C restores the default behaviour and interrupts at once.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.getsignal(signal.SIGINT)

    def handler(signum, frame):
        module_logger.warning(
            "Interrupt received: finishing the current step(s), then stopping. "
            "Press Ctrl+C again to abort immediately."
        )
        cancel_event.set()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def collect_overrides(
    dry_run: bool,
    verbose: bool,
    strict: bool,
    lenient: bool,
    max_workers: Optional[int],
    output_dir: Optional[str],
    skip_flags: Dict[str, bool],
) -> Dict[str, Any]:
    """Translate CLI options into settings overrides. Unset options are left out."""
    if strict and lenient:
        raise click.UsageError("--strict and --lenient are mutually exclusive.")

    overrides: Dict[str, Any] = {}
    if dry_run:
        overrides["dry_run"] = True
    if verbose:
        overrides["verbose"] = True
    if strict:
        overrides["strict_health"] = True
    if lenient:
        overrides["strict_health"] = False
    if max_workers is not None:
        overrides["max_workers"] = max_workers
    if output_dir is not None:
        overrides["output_dir"] = output_dir

    skipped = [
        name for name in ConfiguratorRegistry.service_names()
        if skip_flags.get(f"skip_{name}")
    ]
    if skipped:
        overrides["skip"] = skipped
    return overrides


def add_skip_options(command):
    """Add one ``--skip-<service>`` flag per registered configurator."""
    for name in reversed(ConfiguratorRegistry.service_names()):
        command = click.option(
            f"--skip-{name}",
            f"skip_{name}",
            is_flag=True,
            help=f"Skip {name} configuration.",
        )(command)
    return command


@click.command(name="devstack-configure")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file (default: ./config.yaml if present).",
)
@click.option("--dry-run", is_flag=True, help="Show what would be done without making changes.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--strict", is_flag=True, help="Abort if any service is unhealthy (default).")
@click.option("--lenient", is_flag=True, help="Skip unhealthy services instead of aborting.")
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of services configured concurrently.",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory in which the config-backup-<timestamp> directory is created.",
)
@click.option(
    "--metrics-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write run metrics in Prometheus text format to this file.",
)
@add_skip_options
@click.pass_context
def cli(
    ctx,
    config_file,
    dry_run,
    verbose,
    strict,
    lenient,
    max_workers,
    output_dir,
    metrics_file,
    **skip_flags,
):
    """
    Configure a running DevOps stack through the services' REST APIs.

    Waits until every selected service is healthy, runs its configuration
    steps and writes the generated credentials and a summary report to a
    fresh config-backup directory.
    """
    overrides = collect_overrides(
        dry_run, verbose, strict, lenient, max_workers, output_dir, skip_flags
    )
    try:
        app_settings = load_app_settings(overrides, config_file)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    run_directory = create_run_directory(app_settings.output_dir)
    setup_logging(
        log_level=logging.DEBUG if app_settings.verbose else logging.INFO,
        log_file=str(run_directory / LOG_FILE_NAME),
        log_prefix=app_settings.log_prefix,
        symbols=app_settings.symbols,
    )
    symbols = app_settings.symbols
    module_logger.info(
        f"{symbols.get('rocket', '🚀')} Starting DevOps stack configuration"
        f"{' (DRY RUN)' if app_settings.dry_run else ''}"
    )

    credentials = CredentialsFile(
        run_directory / CREDENTIALS_FILE_NAME, dry_run=app_settings.dry_run
    ).create()
    metrics = BootstrapMetrics()
    metrics.set_run_info(app_settings.dry_run, str(run_directory))

    cancel_event = threading.Event()
    client = ApiClient(
        dry_run=app_settings.dry_run, timeout=app_settings.request_timeout
    )
    plan = build_plan(app_settings, client)
    orchestrator = BootstrapOrchestrator.from_settings(
        app_settings,
        cancel_event=cancel_event,
        credentials=credentials,
        metrics=metrics,
        summary_path=run_directory / SUMMARY_FILE_NAME,
    )

    try:
        with cancel_on_sigint(cancel_event):
            report = orchestrator.run(plan.targets, plan.chains, plan.skipped)
    except ContractViolation as e:
        module_logger.critical(
            f"{symbols.get('critical', '🔥')} Invalid configuration chain: {e}", exc_info=True
        )
        ctx.exit(EXIT_CONTRACT_VIOLATION)
    finally:
        if metrics_file:
            metrics.write_to_file(Path(metrics_file))

    if report.succeeded:
        module_logger.info(
            f"{symbols.get('sparkles', '✨')} DevOps stack configuration completed"
        )
    else:
        module_logger.error(
            f"{symbols.get('error', '❌')} DevOps stack configuration finished with errors"
        )
    click.echo(f"Credentials: {credentials.path}")
    click.echo(f"Summary report: {report.summary_path}")
    ctx.exit(report.exit_code)


def main() -> None:
    cli()
