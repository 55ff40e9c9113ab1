import os
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from repo_audit.analysis.dependency_parser import safe_read_file
from repo_audit.analysis.orchestrator import DependencyOrchestrator
from repo_audit.core.config import get_settings
from repo_audit.core.models import (
    ComplianceResult,
    CriterionResult,
    Dependency,
    EvaluationStatus,
    ExtractionError,
    LicenseIssueType,
)
from repo_audit.services.license_compliance import LicenseComplianceChecker

logger = logging.getLogger(__name__)

FALLBACK_MARKERS = ("fallback", "falling back", "transitive dependencies unavailable")

MANUAL_REVIEW_ISSUE_TYPES = {
    LicenseIssueType.UNKNOWN_LICENSE,
    LicenseIssueType.UNDOCUMENTED_CONDITIONAL,
    LicenseIssueType.NO_LICENSE_INFO,
}


class Criterion(str, Enum):
    THIRD_PARTY_LICENSES = "S003"


def format_extraction_errors(errors: Sequence[ExtractionError]) -> str:
    """
    Render extraction errors as an indented list.

    The underlying exception is shown as ``Details`` unless the message
    already contains it.
    """
    lines = []
    for e in errors:
        line = f"  - [{e.source}] {e.message}"
        cause = str(e.error) if e.error is not None else ""
        if cause and cause not in e.message:
            line += f"\n    Details: {cause}"
        lines.append(line)
    return "\n".join(lines)


def format_warnings(warnings: Sequence[ExtractionError]) -> str:
    return "\n".join(f"  - [{w.source}] {w.message}" for w in warnings)


def find_documentation_text(repo_path: str, file_names: Optional[List[str]] = None) -> str:
    """
    Read the first README variant present in the repository.

    Args:
        repo_path: Repository root
        file_names: Candidate file names, in order of preference

    Returns:
        README content, or an empty string if there is none
    """
    for file_name in file_names or get_settings().DOCUMENTATION_FILES:
        content = safe_read_file(os.path.join(repo_path, file_name))
        if content is not None:
            return content
    return ""


def build_evidence_summary(dependencies: Sequence[Dependency]) -> str:
    license_info = "; ".join(
        f"{d.name}:{d.version} ({', '.join(d.licenses)})"
        for d in dependencies
        if d.has_licenses
    )
    summary = f"Found {len(dependencies)} dependencies. "
    if license_info:
        return summary + f"Licenses: {license_info}"
    return summary + "No license information available for analysis."


def has_fallback_warning(warnings: Sequence[ExtractionError]) -> bool:
    return any(
        marker in w.message.lower()
        for w in warnings
        for marker in FALLBACK_MARKERS
    )


def determine_compliance_status(
    criterion_id: str,
    compliance: ComplianceResult,
    evidence: str,
    warnings: Sequence[ExtractionError],
    fallback_used: bool,
) -> CriterionResult:
    """
    Turn a compliance result into a criterion verdict.

    Args:
        criterion_id: Criterion identifier
        compliance: Result of the compliance check
        evidence: Evidence summary
        warnings: Extraction warnings, appended to the details
        fallback_used: Whether extraction ran on a degraded fallback path

    Returns:
        PASS when compliant on full data, FAIL on prohibited licenses,
        MANUAL otherwise
    """
    warning_info = f"\n\nExtraction warnings:\n{format_warnings(warnings)}" if warnings else ""

    if compliance.compliant:
        if fallback_used:
            return CriterionResult(
                criterion_id,
                EvaluationStatus.MANUAL,
                evidence,
                "License compliance check passed for analyzed dependencies, but MANUAL REVIEW REQUIRED.\n\n"
                "WARNING: Only direct dependencies were analyzed. Transitive dependencies are unavailable "
                "and were not included in this analysis. Full license compliance cannot be verified "
                f"without analyzing all transitive dependencies.{warning_info}",
            )
        return CriterionResult(
            criterion_id,
            EvaluationStatus.PASS,
            evidence,
            "All third-party dependencies comply with the third-party license policy. No Category X "
            f"licenses found, and all Category B licenses are properly documented.{warning_info}",
        )

    issue_details = "\n".join(
        f"- {issue.dependency.name}:{issue.dependency.version} - {issue.reason}"
        for issue in compliance.issues
    )

    if any(issue.issue_type == LicenseIssueType.PROHIBITED_VIOLATION for issue in compliance.issues):
        return CriterionResult(
            criterion_id,
            EvaluationStatus.FAIL,
            evidence,
            "Third-party license compliance issues found. Please resolve these issues according to "
            f"the third-party license policy:\n{issue_details}{warning_info}",
        )

    if all(issue.issue_type in MANUAL_REVIEW_ISSUE_TYPES for issue in compliance.issues):
        return CriterionResult(
            criterion_id,
            EvaluationStatus.MANUAL,
            evidence,
            "Third-party license compliance issues require manual review. Please verify these "
            f"dependencies comply with the third-party license policy:\n{issue_details}{warning_info}",
        )

    return CriterionResult(
        criterion_id,
        EvaluationStatus.MANUAL,
        evidence,
        "Third-party license compliance issues found. Please review these issues according to "
        f"the third-party license policy:\n{issue_details}{warning_info}",
    )


async def evaluate_third_party_licenses(
    repo_path: str,
    orchestrator: Optional[DependencyOrchestrator] = None,
    checker: Optional[LicenseComplianceChecker] = None,
) -> CriterionResult:
    """
    Evaluate third-party license compliance of a repository.

    Args:
        repo_path: Path to the checked-out repository
        orchestrator: Dependency extraction orchestrator
        checker: License compliance checker

    Returns:
        Criterion result for S003
    """
    criterion_id = Criterion.THIRD_PARTY_LICENSES.value
    try:
        orchestrator = orchestrator or DependencyOrchestrator()
        extraction = await orchestrator.extract_dependencies_async(repo_path)

        if extraction.errors:
            return CriterionResult(
                criterion_id,
                EvaluationStatus.MANUAL,
                f"Failed to extract dependencies due to {len(extraction.errors)} error(s)",
                f"Dependency extraction errors:\n{format_extraction_errors(extraction.errors)}\n\n"
                "Manual review required to verify third-party license compliance.",
            )

        if not extraction.dependencies:
            warning_info = f"\n\nWarnings:\n{format_warnings(extraction.warnings)}" if extraction.warnings else ""
            return CriterionResult(
                criterion_id,
                EvaluationStatus.MANUAL,
                "No third-party dependencies found",
                "Repository appears to have no third-party dependencies. This is uncommon and may "
                "indicate a library project, configuration-only project, or build tool detection "
                f"issue. Manual review required to confirm compliance.{warning_info}",
            )

        checker = checker or LicenseComplianceChecker()
        compliance = checker.check(extraction.dependencies, find_documentation_text(repo_path))
        return determine_compliance_status(
            criterion_id,
            compliance,
            build_evidence_summary(extraction.dependencies),
            extraction.warnings,
            has_fallback_warning(extraction.warnings),
        )
    except Exception as e:
        logger.warning(f"Error evaluating {criterion_id}: {str(e)}")
        return CriterionResult(
            criterion_id,
            EvaluationStatus.MANUAL,
            "Error occurred during dependency analysis",
            f"Failed to analyze third-party license compliance: {str(e)}. Manual review required.",
        )


CRITERION_HANDLERS: Dict[Criterion, Callable[..., Awaitable[CriterionResult]]] = {
    Criterion.THIRD_PARTY_LICENSES: evaluate_third_party_licenses,
}


async def evaluate_criterion_async(criterion: Criterion, repo_path: str, **kwargs) -> CriterionResult:
    return await CRITERION_HANDLERS[Criterion(criterion)](repo_path, **kwargs)


def evaluate_criterion(criterion: Criterion, repo_path: str, **kwargs) -> CriterionResult:
    """Evaluate one criterion against a repository, blocking until it completes."""
    return asyncio.run(evaluate_criterion_async(criterion, repo_path, **kwargs))
