#!/usr/bin/env python3
import sys
import click
import logging
from typing import Optional

from cli.commands.check import check
from cli.commands.dependencies import dependencies
from repo_audit.core.config import get_settings
from repo_audit.core.exceptions import PolicyConfigurationError
from repo_audit.services.license_policy import LicensePolicy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("repo-audit")

settings = get_settings()


@click.group()
@click.version_option(version=settings.APP_VERSION, prog_name="repo-audit")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.option("--policy-dir", type=click.Path(exists=True, file_okay=False),
              help="Directory with license_categories.json, license_aliases.json and special_exceptions.json")
@click.pass_context
def cli(ctx, debug: bool, policy_dir: Optional[str]) -> None:
    """
    Repository audit CLI.

    Checks that a project's third-party dependencies carry licenses allowed
    by the license policy.
    """
    # Set up logging level
    if debug or settings.DEBUG:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj["DEBUG"] = debug

    ctx.obj["POLICY"] = None
    if policy_dir:
        try:
            ctx.obj["POLICY"] = LicensePolicy.from_directory(policy_dir)
        except PolicyConfigurationError as e:
            raise click.ClickException(str(e))
        logger.debug(f"Using license policy from {policy_dir}")


cli.add_command(check)
cli.add_command(dependencies)


def main():
    """Entry point for the CLI."""
    try:
        cli(obj={})
    except Exception as e:
        logger.error(f"Error: {str(e)}")
        if "--debug" in sys.argv:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
