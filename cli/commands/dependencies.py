import os
import sys
import json
import click
import logging

from cli.commands.check import build_components
from cli.report import emit, generate_dependency_listing

logger = logging.getLogger(__name__)


@click.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--format", "-f", default="text", type=click.Choice(["text", "json"]), help="Output format")
@click.option("--output", "-o", help="Output file for the listing")
@click.pass_context
def dependencies(ctx, path, format, output):
    """
    List the third-party dependencies of a repository.

    Shows every extracted dependency with its licenses, plus the errors and
    warnings raised while extracting them.
    """
    repo_path = os.path.abspath(path)
    orchestrator, _ = build_components(ctx.obj.get("POLICY"))

    extraction = orchestrator.extract_dependencies(repo_path)

    if format == "json":
        content = json.dumps(extraction.to_dict(), indent=2)
    else:
        content = generate_dependency_listing(extraction)

    try:
        emit(content, output)
    except OSError as e:
        logger.error(f"Could not write listing to {output}: {str(e)}")
        sys.exit(1)
