import asyncio
from unittest.mock import AsyncMock, MagicMock

from repo_audit.analysis.orchestrator import DependencyOrchestrator
from repo_audit.core.models import (
    ComplianceIssue,
    ComplianceResult,
    Dependency,
    EvaluationStatus,
    ExtractionError,
    ExtractionResult,
    LicenseIssueType,
)
from repo_audit.services.criterion import (
    Criterion,
    build_evidence_summary,
    determine_compliance_status,
    evaluate_criterion,
    evaluate_criterion_async,
    find_documentation_text,
    format_extraction_errors,
    has_fallback_warning,
)
from repo_audit.services.license_compliance import LicenseComplianceChecker

from tests.conftest import write_file

NPM_FALLBACK_WARNING = ExtractionError(
    "npm-parser",
    "Using fallback: extracted 2 direct dependencies from package.json, transitive dependencies "
    "unavailable. License compliance will require manual review.",
)


def _orchestrator(extraction=None, exception=None):
    orchestrator = MagicMock(spec=DependencyOrchestrator)
    orchestrator.extract_dependencies_async = AsyncMock(return_value=extraction, side_effect=exception)
    return orchestrator


def _evaluate(repo_dir, orchestrator, policy, quiet_logger):
    checker = LicenseComplianceChecker(policy=policy, logger=quiet_logger)
    return evaluate_criterion(
        Criterion.THIRD_PARTY_LICENSES, repo_dir, orchestrator=orchestrator, checker=checker
    )


def _issue(issue_type, name="lib"):
    return ComplianceIssue(Dependency(name, "1.0"), f"{issue_type.value} reason", issue_type)


def test_format_extraction_errors():
    """Test error formatting with and without nested details."""
    errors = [
        ExtractionError("maven-parser", "Maven build timed out", TimeoutError("killed after 300s")),
        ExtractionError("npm-parser", "Failed: boom", RuntimeError("boom")),
        ExtractionError("gradle-parser", "No cause"),
    ]

    assert format_extraction_errors(errors) == (
        "  - [maven-parser] Maven build timed out\n"
        "    Details: killed after 300s\n"
        "  - [npm-parser] Failed: boom\n"
        "  - [gradle-parser] No cause"
    )


def test_build_evidence_summary():
    """Test the evidence line."""
    dependencies = [
        Dependency("junit:junit", "4.13.2", ("EPL-1.0",)),
        Dependency("dual", "1.0", ("MIT", "Apache-2.0")),
        Dependency("bare", "0.1"),
    ]

    assert build_evidence_summary(dependencies) == (
        "Found 3 dependencies. Licenses: junit:junit:4.13.2 (EPL-1.0); dual:1.0 (MIT, Apache-2.0)"
    )
    assert build_evidence_summary([Dependency("bare", "0.1")]) == (
        "Found 1 dependencies. No license information available for analysis."
    )


def test_has_fallback_warning():
    """Test recognition of degraded extraction warnings."""
    assert has_fallback_warning([NPM_FALLBACK_WARNING])
    assert has_fallback_warning([ExtractionError("gradle-parser", "Plugin missing, Falling back to tree")])
    assert not has_fallback_warning([ExtractionError("maven-parser", "Something else happened")])
    assert not has_fallback_warning([])


def test_find_documentation_text(repo_dir):
    """Test README lookup order."""
    assert find_documentation_text(repo_dir) == ""

    write_file(repo_dir, "README.txt", "plain readme")
    assert find_documentation_text(repo_dir) == "plain readme"

    write_file(repo_dir, "README.md", "# Markdown readme")
    assert find_documentation_text(repo_dir) == "# Markdown readme"

    assert find_documentation_text(repo_dir, ["NOTICE"]) == ""


def test_status_pass():
    """Test that a compliant result on full data passes."""
    result = determine_compliance_status("S003", ComplianceResult(), "evidence", [], False)

    assert result.status == EvaluationStatus.PASS
    assert result.evidence == "evidence"
    assert "No Category X licenses found" in result.details


def test_status_compliant_with_fallback_needs_review():
    """Test that partial data never passes."""
    result = determine_compliance_status("S003", ComplianceResult(), "evidence", [NPM_FALLBACK_WARNING], True)

    assert result.status == EvaluationStatus.MANUAL
    assert "MANUAL REVIEW REQUIRED" in result.details
    assert "Transitive dependencies are unavailable" in result.details
    assert "[npm-parser] Using fallback" in result.details


def test_status_prohibited_fails():
    """Test that any prohibited license fails the criterion."""
    compliance = ComplianceResult(issues=[
        _issue(LicenseIssueType.UNKNOWN_LICENSE, "a"),
        _issue(LicenseIssueType.PROHIBITED_VIOLATION, "b"),
    ])

    result = determine_compliance_status("S003", compliance, "evidence", [], False)

    assert result.status == EvaluationStatus.FAIL
    assert "- a:1.0 - unknown-license reason" in result.details
    assert "- b:1.0 - prohibited-violation reason" in result.details


def test_status_other_issues_need_review():
    """Test that non-prohibited issues lead to manual review."""
    for issue_type in (
        LicenseIssueType.UNKNOWN_LICENSE,
        LicenseIssueType.UNDOCUMENTED_CONDITIONAL,
        LicenseIssueType.NO_LICENSE_INFO,
        LicenseIssueType.PARSER_CONTRACT_VIOLATION,
    ):
        compliance = ComplianceResult(issues=[_issue(issue_type)])
        result = determine_compliance_status("S003", compliance, "evidence", [], False)
        assert result.status == EvaluationStatus.MANUAL


def test_evaluate_pass(repo_dir, policy, quiet_logger):
    """Test a repository whose dependencies are all approved."""
    extraction = ExtractionResult(dependencies=[Dependency("react", "18.2.0", ("MIT",))])

    result = _evaluate(repo_dir, _orchestrator(extraction), policy, quiet_logger)

    assert result.criterion_id == "S003"
    assert result.status == EvaluationStatus.PASS
    assert result.evidence == "Found 1 dependencies. Licenses: react:18.2.0 (MIT)"


def test_evaluate_uses_readme(repo_dir, policy, quiet_logger):
    """Test that README content documents conditional licenses."""
    extraction = ExtractionResult(dependencies=[Dependency("org.hibernate:hibernate-core", "5.6.0", ("LGPL-2.1",))])
    orchestrator = _orchestrator(extraction)

    assert _evaluate(repo_dir, orchestrator, policy, quiet_logger).status == EvaluationStatus.MANUAL

    write_file(repo_dir, "README.md", "This project uses LGPL libraries (Hibernate).")
    assert _evaluate(repo_dir, orchestrator, policy, quiet_logger).status == EvaluationStatus.PASS


def test_evaluate_fail(repo_dir, policy, quiet_logger):
    """Test a repository with a GPL dependency."""
    extraction = ExtractionResult(dependencies=[Dependency("some.gpl:library", "1.0.0", ("GPL-3.0",))])

    result = _evaluate(repo_dir, _orchestrator(extraction), policy, quiet_logger)

    assert result.status == EvaluationStatus.FAIL
    assert "Category X" in result.details


def test_evaluate_fallback_is_manual(repo_dir, policy, quiet_logger):
    """Test that fallback extraction requires manual review even when compliant."""
    extraction = ExtractionResult(
        dependencies=[Dependency("react", "18.2.0", ("MIT",))],
        warnings=[NPM_FALLBACK_WARNING],
    )

    result = _evaluate(repo_dir, _orchestrator(extraction), policy, quiet_logger)

    assert result.status == EvaluationStatus.MANUAL
    assert "MANUAL REVIEW REQUIRED" in result.details


def test_evaluate_extraction_errors(repo_dir, policy, quiet_logger):
    """Test that extraction errors prevent a verdict."""
    extraction = ExtractionResult(
        dependencies=[Dependency("react", "18.2.0", ("MIT",))],
        errors=[
            ExtractionError("maven-parser", "Maven build timed out after 5 minutes."),
            ExtractionError("gradle-parser", "Failed to extract Gradle dependencies"),
        ],
    )

    result = _evaluate(repo_dir, _orchestrator(extraction), policy, quiet_logger)

    assert result.status == EvaluationStatus.MANUAL
    assert result.evidence == "Failed to extract dependencies due to 2 error(s)"
    assert "  - [maven-parser] Maven build timed out after 5 minutes." in result.details


def test_evaluate_no_dependencies(repo_dir, policy, quiet_logger):
    """Test a repository without third-party dependencies."""
    extraction = ExtractionResult(
        warnings=[ExtractionError("dependency-orchestrator", "No supported build tools found (Maven, Gradle, npm).")]
    )

    result = _evaluate(repo_dir, _orchestrator(extraction), policy, quiet_logger)

    assert result.status == EvaluationStatus.MANUAL
    assert result.evidence == "No third-party dependencies found"
    assert "No supported build tools found" in result.details


def test_evaluate_unexpected_exception(repo_dir, policy, quiet_logger):
    """Test that unexpected exceptions become a manual verdict."""
    orchestrator = _orchestrator(exception=RuntimeError("disk on fire"))

    result = _evaluate(repo_dir, orchestrator, policy, quiet_logger)

    assert result.status == EvaluationStatus.MANUAL
    assert result.evidence == "Error occurred during dependency analysis"
    assert "disk on fire" in result.details


def test_evaluate_criterion_accepts_identifier(repo_dir, policy, quiet_logger):
    """Test dispatch by criterion identifier."""
    extraction = ExtractionResult(dependencies=[Dependency("react", "18.2.0", ("MIT",))])
    checker = LicenseComplianceChecker(policy=policy, logger=quiet_logger)

    result = asyncio.run(evaluate_criterion_async(
        "S003", repo_dir, orchestrator=_orchestrator(extraction), checker=checker
    ))

    assert result.status == EvaluationStatus.PASS
