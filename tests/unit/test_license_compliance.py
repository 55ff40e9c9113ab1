import pytest

from repo_audit.core.models import Dependency, LicenseIssueType
from repo_audit.services.license_compliance import (
    LicenseComplianceChecker,
    check_license_compliance,
    is_unsplit_expression,
)


@pytest.fixture
def checker(policy, quiet_logger):
    return LicenseComplianceChecker(policy=policy, logger=quiet_logger)


def _single_issue(checker, licenses, documentation="", name="com.example:library"):
    result = checker.check([Dependency(name, "1.0.0", licenses)], documentation)
    assert len(result.issues) <= 1
    return result.issues[0] if result.issues else None


def test_approved_license_passes(checker):
    """Test that Category A licenses need no documentation."""
    for license_name in ("MIT", "Apache-2.0", "BSD-3-Clause", "ISC"):
        assert _single_issue(checker, (license_name,)) is None


def test_prohibited_license_fails(checker):
    """Test that Category X licenses are reported as violations."""
    for license_name in ("GPL-3.0", "AGPL-3.0", "LGPL-2.0"):
        issue = _single_issue(checker, (license_name,), documentation="We use GPL and LGPL libraries.")
        assert issue.issue_type == LicenseIssueType.PROHIBITED_VIOLATION
        assert issue.reason == f"License '{license_name}' is in Category X (prohibited)"


def test_missing_licenses(checker):
    """Test dependencies without any usable license entry."""
    for licenses in (None, (), ("", "  ")):
        issue = _single_issue(checker, licenses)
        assert issue.issue_type == LicenseIssueType.NO_LICENSE_INFO
        assert issue.reason == "No license information available"


def test_unknown_license(checker):
    """Test that unrecognized licenses need manual review."""
    issue = _single_issue(checker, ("Proprietary Vendor License",))

    assert issue.issue_type == LicenseIssueType.UNKNOWN_LICENSE
    assert issue.reason == "Unknown license 'Proprietary Vendor License' - requires manual review"


@pytest.mark.parametrize("license_name", ["Apache-2.0|MIT", "MIT OR Apache-2.0", "(MIT)", "GPL-2.0 WITH Classpath-exception-2.0"])
def test_unsplit_license_is_a_parser_error(checker, license_name):
    """Test that expressions are never treated as atomic licenses."""
    issue = _single_issue(checker, ("MIT", license_name))

    assert issue.issue_type == LicenseIssueType.PARSER_CONTRACT_VIOLATION
    assert issue.reason == f"Parser error: Licenses not properly split (found separators in: {license_name})"


def test_is_unsplit_expression():
    """Test that lower-case words inside license names are not separators."""
    assert not is_unsplit_expression("Common Development and Distribution License 1.0")
    assert not is_unsplit_expression("MIT")
    assert is_unsplit_expression("BSD-3-Clause AND MIT")


def test_conditional_license_requires_documentation(checker):
    """Test documentation gating of Category B and weak copyleft licenses."""
    issue = _single_issue(checker, ("LGPL-2.1",), documentation="A project README.")
    assert issue.issue_type == LicenseIssueType.UNDOCUMENTED_CONDITIONAL
    assert issue.reason == "Category B license 'LGPL-2.1' not documented in README"

    assert _single_issue(checker, ("LGPL-2.1",), documentation="This project uses LGPL libraries") is None
    assert _single_issue(checker, ("LGPL-3.0",), documentation="Parts are under the GNU Lesser General Public License") is None
    assert _single_issue(checker, ("MPL-2.0",), documentation="Includes code under the Mozilla Public License") is None
    assert _single_issue(checker, ("EPL-1.0",), documentation="Eclipse Public License components") is None


def test_lesser_family_documented_without_license_word(checker):
    """Test that "Lesser General Public" alone documents an LGPL dependency."""
    assert _single_issue(checker, ("LGPL-2.1",), documentation="Bundles GNU Lesser General Public code.") is None


def test_conditional_license_documented_by_name(checker):
    """Test that naming the dependency in the documentation is enough."""
    documentation = "Third-party: COM.EXAMPLE:LIBRARY is used for parsing."
    assert _single_issue(checker, ("CDDL-1.1",), documentation=documentation) is None


def test_special_exception_for_lesser_family(checker):
    """Test the documented exception path for prohibited Lesser licenses."""
    name = "org.hibernate:hibernate-core"

    issue = _single_issue(checker, ("LGPL-2.0",), name=name)
    assert issue.issue_type == LicenseIssueType.UNDOCUMENTED_CONDITIONAL
    assert issue.reason == f"LGPL license 'LGPL-2.0' requires documentation in README (special exception: {name})"

    assert _single_issue(checker, ("LGPL-2.0",), documentation="Uses LGPL (Hibernate)", name=name) is None

    issue = _single_issue(checker, ("GPL-3.0",), documentation="Uses GPL", name=name)
    assert issue.issue_type == LicenseIssueType.PROHIBITED_VIOLATION


def test_dual_license_any_compliant_passes(checker):
    """Test that one approved alternative makes the dependency compliant."""
    assert _single_issue(checker, ("GPL-3.0", "Apache-2.0")) is None
    assert _single_issue(checker, ("Apache-2.0", "GPL-3.0")) is None
    assert _single_issue(checker, ("Unknown-1.0", "MIT")) is None


def test_multi_license_unknown_reported_without_prohibited(checker):
    """Test that unknown alternatives are listed when nothing is prohibited."""
    issue = _single_issue(checker, ("Unknown-1.0", "MPL-2.0", "Unknown-2.0"))

    assert issue.issue_type == LicenseIssueType.UNKNOWN_LICENSE
    assert issue.reason == "Unknown licenses require manual review: Unknown-1.0, Unknown-2.0"


def test_multi_license_prohibited_wins_over_unknown(checker):
    """Test that a prohibited alternative makes the failure definite."""
    issue = _single_issue(checker, ("Unknown-1.0", "GPL-3.0"))

    assert issue.issue_type == LicenseIssueType.PROHIBITED_VIOLATION
    assert issue.reason == "License 'GPL-3.0' is in Category X (prohibited)"


def test_multi_license_first_definite_failure(checker):
    """Test that the first failure in declaration order is reported."""
    issue = _single_issue(checker, ("MPL-2.0", "GPL-3.0"))

    assert issue.issue_type == LicenseIssueType.UNDOCUMENTED_CONDITIONAL
    assert issue.reason == "Category B license 'MPL-2.0' not documented in README"


def test_scenario_all_approved(policy):
    """Test a project using only approved licenses."""
    result = check_license_compliance(
        [
            {"name": "org.apache.commons:commons-lang3", "version": "3.12.0", "licenses": ["Apache-2.0"]},
            {"name": "junit:junit", "version": "4.13.2", "licenses": ["MIT"]},
        ],
        "",
        policy=policy,
    )

    assert result.to_dict() == {"compliant": True, "issues": []}


def test_scenario_gpl_dependency(policy):
    """Test a project with a GPL dependency."""
    result = check_license_compliance(
        [{"name": "some.gpl:library", "version": "1.0.0", "licenses": ["GPL-3.0"]}],
        "This project uses GPL libraries.",
        policy=policy,
    )

    assert not result.compliant
    assert len(result.issues) == 1
    assert "Category X" in result.issues[0].reason
    assert "prohibited" in result.issues[0].reason


def test_scenario_hibernate_exception(policy):
    """Test the Hibernate exception with and without documentation."""
    dependencies = [{"name": "org.hibernate:hibernate-core", "version": "5.6.0", "licenses": ["LGPL-2.1"]}]

    result = check_license_compliance(dependencies, "A README without license notes.", policy=policy)
    assert not result.compliant
    assert "special exception: org.hibernate:hibernate-core" in result.issues[0].reason

    result = check_license_compliance(dependencies, "This project uses LGPL libraries (Hibernate)", policy=policy)
    assert result.compliant


def test_each_dependency_is_judged_independently(checker):
    """Test that issues are reported per dependency in input order."""
    result = checker.check(
        [
            Dependency("a", "1.0", ("GPL-3.0",)),
            Dependency("b", "1.0", ("MIT",)),
            Dependency("c", "1.0"),
        ],
        "",
    )

    assert [i.dependency.name for i in result.issues] == ["a", "c"]
    assert result.compliant is False


def test_malformed_input_is_coerced(checker):
    """Test that malformed arguments are treated as empty rather than raising."""
    assert checker.check(None, "").compliant
    assert checker.check("not a list", "").issues == []
    assert checker.check({"name": "x"}, None).issues == []

    result = checker.check(
        [
            {"name": "ok", "version": "1.0", "licenses": "GPL-3.0"},
            {"name": "missing-version"},
            42,
            Dependency("", "1.0", ("MIT",)),
        ],
        12345,
    )

    assert len(result.issues) == 1
    assert result.issues[0].dependency == Dependency("ok", "1.0", ("GPL-3.0",))
