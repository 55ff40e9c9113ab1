import os
import sys
import click
import logging
from typing import Optional

from cli.report import emit, render_criterion_result
from repo_audit.analysis.dependency_parser import DependencyParserFactory
from repo_audit.analysis.orchestrator import DependencyOrchestrator
from repo_audit.core.models import EvaluationStatus
from repo_audit.services.criterion import Criterion, evaluate_criterion
from repo_audit.services.license_compliance import LicenseComplianceChecker
from repo_audit.services.license_policy import LicensePolicy

logger = logging.getLogger(__name__)

EXIT_CODES = {
    EvaluationStatus.PASS: 0,
    EvaluationStatus.FAIL: 1,
    EvaluationStatus.MANUAL: 2,
}


def build_components(policy: Optional[LicensePolicy]):
    """Orchestrator and checker bound to a policy; defaults when none is given."""
    if policy is None:
        return DependencyOrchestrator(), LicenseComplianceChecker()
    parsers = DependencyParserFactory.create_all(policy=policy)
    return DependencyOrchestrator(parsers=parsers), LicenseComplianceChecker(policy=policy)


@click.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--format", "-f", default="text", type=click.Choice(["text", "markdown", "json"]),
              help="Output format")
@click.option("--output", "-o", help="Output file for the report")
@click.pass_context
def check(ctx, path, format, output):
    """
    Check third-party license compliance of a repository.

    Extracts Maven, Gradle and npm dependencies, classifies their licenses
    and exits with 0 (PASS), 1 (FAIL) or 2 (MANUAL review required).
    """
    repo_path = os.path.abspath(path)
    orchestrator, checker = build_components(ctx.obj.get("POLICY"))

    logger.info(f"Checking third-party licenses of {repo_path}")
    result = evaluate_criterion(
        Criterion.THIRD_PARTY_LICENSES,
        repo_path,
        orchestrator=orchestrator,
        checker=checker,
    )
    logger.info(f"{result.criterion_id}: {result.status.value}")

    try:
        emit(render_criterion_result(repo_path, result, format), output)
    except OSError as e:
        logger.error(f"Could not write report to {output}: {str(e)}")
        sys.exit(1)

    ctx.exit(EXIT_CODES[result.status])
