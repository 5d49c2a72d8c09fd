"""Command-line interface for mondeploy."""

import logging
import sys

import click

from mondeploy import __version__
from mondeploy.config import DEFAULT_CONFIG_NAME, load_config
from mondeploy.exceptions import ConfigError
from mondeploy.logging import DeploymentLog, configure_logging
from mondeploy.pipeline import CommandDispatcher
from mondeploy.process import SubprocessRunner
from mondeploy.types import Command, RunContext

logger = logging.getLogger(__name__)

EPILOG = f"""\b
Commands:
  check     Check prerequisites and connectivity
  deploy    Full deployment (default)
  dry-run   Show what would be deployed without making changes
  update    Update existing deployment (playbook tasks tagged "update")
  info      Show access information
  validate  Validate playbook syntax only

\b
Examples:
  mondeploy                 # Run full deployment
  mondeploy -v deploy       # Run deployment with verbose output
  mondeploy dry-run         # Preview what would be deployed
  mondeploy check           # Only check prerequisites
  mondeploy info            # Show access URLs

Settings are read from {DEFAULT_CONFIG_NAME} in the working directory unless
--config is given. Log files are stored in the configured log directory
(logs/ by default).
"""


@click.command(context_settings={"help_option_names": ["-h", "--help"]}, epilog=EPILOG)
@click.argument("command", required=False, default=Command.DEPLOY.value, metavar="[COMMAND]")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    envvar="MONDEPLOY_CONFIG",
    help=f"Configuration file (default: ./{DEFAULT_CONFIG_NAME} if present)",
)
@click.version_option(__version__, prog_name="mondeploy")
@click.pass_context
def cli(ctx: click.Context, command: str, verbose: bool, config_path: str | None) -> None:
    """Deploy the monitoring stack to the hosts in an Ansible inventory."""
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    log = DeploymentLog(config.log_dir, verbose=verbose, retention_days=config.retention_days)
    try:
        log.start_session(sys.argv)

        click.echo("=== Monitoring Stack Deployment ===")
        click.echo()

        try:
            selected = Command(command)
        except ValueError:
            log.error(f"Unknown command: {command}")
            click.echo()
            click.echo(ctx.get_help())
            ctx.exit(1)

        log.debug(f"Starting deployment with command: {selected.value}")
        log.debug(f"Log file: {log.path}")
        log.debug(f"Verbose mode: {verbose}")
        logger.debug(f"Configuration loaded (command={selected.value}, inventory={config.inventory})")

        run_ctx = RunContext(
            command=selected,
            verbose=verbose,
            inventory=config.inventory,
            playbook=config.playbook,
            log=log,
        )
        CommandDispatcher(run_ctx, config, SubprocessRunner()).run()
        click.echo()
    finally:
        log.close()


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
