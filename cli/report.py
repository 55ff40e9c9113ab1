import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import click
import tabulate

from repo_audit.core.models import CriterionResult, ExtractionResult
from repo_audit.services.criterion import format_extraction_errors, format_warnings

logger = logging.getLogger(__name__)

RULE_WIDTH = 80


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def generate_json_report(repo_path: str, result: CriterionResult) -> Dict[str, Any]:
    return {
        "repository": repo_path,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "result": result.to_dict(),
    }


def generate_text_report(repo_path: str, result: CriterionResult) -> str:
    """
    Generate a plain text report.

    Args:
        repo_path: Evaluated repository
        result: Criterion result

    Returns:
        Text report
    """
    report_lines = []

    report_lines.append("=" * RULE_WIDTH)
    report_lines.append("THIRD-PARTY LICENSE COMPLIANCE REPORT")
    report_lines.append("=" * RULE_WIDTH)
    report_lines.append(f"Repository: {repo_path}")
    report_lines.append(f"Report Generated: {_timestamp()}")
    report_lines.append("-" * RULE_WIDTH)

    table_data = [
        ["Criterion", result.criterion_id],
        ["Status", result.status.value],
        ["Evidence", result.evidence],
    ]
    report_lines.append(tabulate.tabulate(table_data, tablefmt="grid", maxcolwidths=[None, 60]))

    report_lines.append("\nDETAILS:")
    report_lines.append(result.details)

    return "\n".join(report_lines)


def generate_markdown_report(repo_path: str, result: CriterionResult) -> str:
    """
    Generate a Markdown report.

    Args:
        repo_path: Evaluated repository
        result: Criterion result

    Returns:
        Markdown report
    """
    md_lines = []

    md_lines.append("# Third-Party License Compliance Report")
    md_lines.append("")
    md_lines.append(f"**Repository:** {repo_path}  ")
    md_lines.append(f"**Report Generated:** {_timestamp()}")
    md_lines.append("")
    md_lines.append("| Criterion | Status | Evidence |")
    md_lines.append("|-----------|--------|----------|")
    evidence = result.evidence.replace("|", "\\|")
    md_lines.append(f"| {result.criterion_id} | {result.status.value} | {evidence} |")
    md_lines.append("")
    md_lines.append("## Details")
    md_lines.append("")
    md_lines.append("```")
    md_lines.append(result.details)
    md_lines.append("```")

    return "\n".join(md_lines)


def render_criterion_result(repo_path: str, result: CriterionResult, format: str) -> str:
    if format == "json":
        return json.dumps(generate_json_report(repo_path, result), indent=2)
    if format == "markdown":
        return generate_markdown_report(repo_path, result)
    return generate_text_report(repo_path, result)


def generate_dependency_listing(extraction: ExtractionResult) -> str:
    """Tabulate extracted dependencies followed by extraction errors and warnings."""
    lines = [f"DEPENDENCIES ({len(extraction.dependencies)} total)", "-" * RULE_WIDTH]

    if extraction.dependencies:
        table_data = [
            [d.name, d.version, ", ".join(d.licenses) if d.has_licenses else "-"]
            for d in extraction.dependencies
        ]
        lines.append(tabulate.tabulate(table_data, headers=["Name", "Version", "Licenses"], tablefmt="grid"))
    else:
        lines.append("No dependencies found.")

    if extraction.errors:
        lines.append(f"\nERRORS ({len(extraction.errors)}):")
        lines.append(format_extraction_errors(extraction.errors))

    if extraction.warnings:
        lines.append(f"\nWARNINGS ({len(extraction.warnings)}):")
        lines.append(format_warnings(extraction.warnings))

    return "\n".join(lines)


def emit(content: str, output: Optional[str] = None) -> None:
    """Write content to a file, or to stdout when no file is given."""
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(content)
            f.write("\n")
        logger.info(f"Report saved to {output}")
    else:
        click.echo(content)
