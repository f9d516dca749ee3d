"""wicked-autodeploy commands.

Commands:
    wicked-autodeploy run [--config FILE] [--verbose]
    wicked-autodeploy version
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from wicked.autodeploy import __version__
from wicked.autodeploy.audit import AuditLogger, configure_audit_logging
from wicked.autodeploy.cluster import KubernetesClient
from wicked.autodeploy.config import ProvisionSettings, load_settings
from wicked.autodeploy.errors import ConfigurationError, ProvisioningError
from wicked.autodeploy.gateway import WickedClient
from wicked.autodeploy.logs import configure_logging
from wicked.autodeploy.provision import ProvisionResult, run_provisioning

logger = logging.getLogger(__name__)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="YAML file with provisioning settings",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output"),
]


def register(app: typer.Typer) -> None:
    """Attach the commands to ``app``."""

    @app.callback(invoke_without_command=True)
    def default(
        ctx: typer.Context,
        config_path: ConfigOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Run provisioning when no command is given."""
        if ctx.invoked_subcommand is None:
            run(config_path=config_path, verbose=verbose)

    app.command("run")(run)
    app.command("version")(version)


def run(
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Create or update the application, subscription and Kubernetes secret.

    Idempotent: running it again against an up-to-date gateway makes no
    gateway changes. The secret is always recreated.

    Example:
        wicked-autodeploy run --config autodeploy.yaml
    """
    try:
        settings = load_settings(config_path)
        token = None if settings.ignore_k8s else settings.read_token()
    except ConfigurationError as e:
        configure_logging(verbose=verbose)
        for problem in e.problems:
            logger.error(problem)
        logger.error("Not successful, exiting.")
        raise typer.Exit(1)
    except OSError as e:
        configure_logging(verbose=verbose)
        logger.error("Could not read service account token: %s", e)
        raise typer.Exit(1)

    configure_logging(settings.log_level, verbose=verbose)
    configure_audit_logging(log_level=settings.log_level, json_format=settings.log_json)
    for line in settings.describe():
        logger.info(line)

    audit = AuditLogger()
    try:
        result = asyncio.run(_async_run(settings, token, audit))
    except ProvisioningError as e:
        _report_failure(e)
        audit.log_failure(e, app_id=settings.app_id, api_id=settings.api_id)
        raise typer.Exit(1)
    except Exception as e:
        logger.error("Initialization failed.")
        logger.error("Error: %s", e)
        if verbose:
            logger.exception(e)
        raise typer.Exit(1)

    logger.info("Successfully created or checked application/subscription.")
    typer.echo(result.summary())


def version() -> None:
    """Print the package version."""
    typer.echo(__version__)


def _report_failure(error: ProvisioningError) -> None:
    logger.error("Initialization failed.")
    logger.error("%s", error)
    if error.status_code is not None:
        logger.error("Status code: %s", error.status_code)
    if error.body is not None:
        logger.error("Error body:")
        logger.error(json.dumps(error.body))


async def _async_run(
    settings: ProvisionSettings,
    token: str | None,
    audit: AuditLogger,
) -> ProvisionResult:
    """Run the async provisioning sequence."""
    async with WickedClient(settings) as gateway:
        await gateway.initialize()
        await gateway.init_machine_user(settings.user_agent)

        if token is None:
            return await run_provisioning(settings, gateway, None, audit=audit)

        async with KubernetesClient(
            settings.kubernetes_api, token, timeout=settings.http_timeout
        ) as cluster:
            return await run_provisioning(settings, gateway, cluster, audit=audit)
