import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from repo_audit.core.models import (
    ComplianceIssue,
    ComplianceResult,
    Dependency,
    LicenseCategory,
    LicenseIssueType,
    is_non_empty_string,
)
from repo_audit.services.license_policy import LicensePolicy, get_license_policy

logger = logging.getLogger(__name__)

# Markers of license expressions a parser should have split. Only the
# upper-case operators count so that names like "Common Development and
# Distribution License" are not flagged.
UNSPLIT_SEPARATORS = ("|", " OR ", " AND ", " WITH ")


@dataclass
class LicenseEvaluation:
    """Verdict for one atomic license of a dependency."""

    license: str
    compliant: bool
    reason: str
    issue_type: Optional[LicenseIssueType] = None


def is_unsplit_expression(license_name: str) -> bool:
    if any(separator in license_name for separator in UNSPLIT_SEPARATORS):
        return True
    return "(" in license_name and ")" in license_name


class LicenseComplianceChecker:
    """
    Third-party license compliance checker.

    Judges each dependency against the license policy:
    1. Approved licenses pass outright
    2. Conditional licenses pass when the project documents them
    3. Prohibited licenses fail, except documented Lesser-family licenses
       of dependencies holding a special exception
    4. Dual-licensed dependencies pass when any one license passes

    Parsers hand over licenses already split into atomic names. Anything
    that still looks like an expression is reported as a parser error.
    """

    def __init__(self, policy: Optional[LicensePolicy] = None, logger: Optional[logging.Logger] = None):
        self.policy = policy or get_license_policy()
        self.logger = logger or logging.getLogger(__name__)

    def check(self, dependencies: Any, documentation_text: Any) -> ComplianceResult:
        """
        Check license compliance for dependencies.

        Args:
            dependencies: Dependencies (or name/version/licenses mappings) with pre-split licenses
            documentation_text: Project documentation (README) used for Conditional licenses

        Returns:
            Compliance result with one issue per non-compliant dependency
        """
        if isinstance(dependencies, (str, bytes)) or not isinstance(dependencies, Sequence):
            self.logger.warning(
                f"Dependencies must be a sequence, got {type(dependencies).__name__}; treating as empty"
            )
            dependencies = []

        if not isinstance(documentation_text, str):
            self.logger.warning(
                f"Documentation text must be a string, got {type(documentation_text).__name__}; treating as empty"
            )
            documentation_text = ""

        documentation = documentation_text.lower()
        issues: List[ComplianceIssue] = []

        for item in dependencies:
            dependency = self._coerce(item)
            if dependency is None:
                continue
            issue = self.check_dependency(dependency, documentation)
            if issue is not None:
                issues.append(issue)

        return ComplianceResult(issues=issues)

    def check_dependency(self, dependency: Dependency, documentation: str) -> Optional[ComplianceIssue]:
        """
        Check one dependency.

        Args:
            dependency: Dependency to check
            documentation: Lower-cased documentation text

        Returns:
            Issue, or None if the dependency is compliant
        """
        licenses = [l.strip() for l in (dependency.licenses or ()) if is_non_empty_string(l)]
        if not licenses:
            return ComplianceIssue(dependency, "No license information available", LicenseIssueType.NO_LICENSE_INFO)

        unsplit = [l for l in licenses if is_unsplit_expression(l)]
        if unsplit:
            self.logger.error(
                f"Parser contract violation for {dependency.name}: licenses must be split into "
                f"atomic names before compliance checking. Found: {', '.join(unsplit)}"
            )
            return ComplianceIssue(
                dependency,
                f"Parser error: Licenses not properly split (found separators in: {', '.join(unsplit)})",
                LicenseIssueType.PARSER_CONTRACT_VIOLATION,
            )

        if len(licenses) == 1:
            evaluation = self.evaluate_license(licenses[0], dependency, documentation)
            if evaluation.compliant:
                return None
            return ComplianceIssue(dependency, evaluation.reason, evaluation.issue_type)

        return self._check_alternatives(licenses, dependency, documentation)

    def evaluate_license(self, license_name: str, dependency: Dependency, documentation: str) -> LicenseEvaluation:
        """
        Evaluate a single atomic license of a dependency.

        Args:
            license_name: License to evaluate
            dependency: Dependency declaring the license
            documentation: Lower-cased documentation text

        Returns:
            License evaluation
        """
        category = self.policy.category_of(license_name)

        if category is None:
            return LicenseEvaluation(
                license_name,
                False,
                f"Unknown license '{license_name}' - requires manual review",
                LicenseIssueType.UNKNOWN_LICENSE,
            )

        if category == LicenseCategory.APPROVED:
            return LicenseEvaluation(license_name, True, f"Category A license '{license_name}' is approved")

        special_exception = self.policy.is_special_exception(dependency.name)

        if category.requires_documentation:
            if self.is_documented(dependency, license_name, documentation):
                return LicenseEvaluation(license_name, True, f"Category B license '{license_name}' is documented in README")
            reason = f"Category B license '{license_name}' not documented in README"
            if special_exception:
                reason += f" (special exception: {dependency.name})"
            return LicenseEvaluation(license_name, False, reason, LicenseIssueType.UNDOCUMENTED_CONDITIONAL)

        if self.policy.is_lesser_family(license_name) and special_exception:
            if self.is_documented(dependency, license_name, documentation):
                return LicenseEvaluation(
                    license_name, True, f"LGPL license '{license_name}' with special exception is documented"
                )
            return LicenseEvaluation(
                license_name,
                False,
                f"LGPL license '{license_name}' requires documentation in README "
                f"(special exception: {dependency.name})",
                LicenseIssueType.UNDOCUMENTED_CONDITIONAL,
            )

        return LicenseEvaluation(
            license_name,
            False,
            f"License '{license_name}' is in Category X (prohibited)",
            LicenseIssueType.PROHIBITED_VIOLATION,
        )

    def is_documented(self, dependency: Dependency, license_name: str, documentation: str) -> bool:
        """
        Check whether the project documents a dependency's license.

        The dependency name or any keyword of the license's family must appear
        in the documentation, ignoring case.
        """
        if not documentation:
            return False
        if dependency.name.lower() in documentation:
            return True
        return any(keyword in documentation for keyword in self.policy.documentation_keywords(license_name))

    def _check_alternatives(
        self,
        licenses: List[str],
        dependency: Dependency,
        documentation: str,
    ) -> Optional[ComplianceIssue]:
        evaluations = []
        for license_name in licenses:
            evaluation = self.evaluate_license(license_name, dependency, documentation)
            if evaluation.compliant:
                return None
            evaluations.append(evaluation)

        unknown = [e.license for e in evaluations if e.issue_type == LicenseIssueType.UNKNOWN_LICENSE]
        prohibited = any(e.issue_type == LicenseIssueType.PROHIBITED_VIOLATION for e in evaluations)
        if unknown and not prohibited:
            return ComplianceIssue(
                dependency,
                f"Unknown licenses require manual review: {', '.join(unknown)}",
                LicenseIssueType.UNKNOWN_LICENSE,
            )

        failure = next(e for e in evaluations if e.issue_type != LicenseIssueType.UNKNOWN_LICENSE)
        return ComplianceIssue(dependency, failure.reason, failure.issue_type)

    def _coerce(self, item: Any) -> Optional[Dependency]:
        if isinstance(item, Dependency):
            dependency = item
        elif isinstance(item, Mapping):
            dependency = Dependency.from_mapping(item)
        else:
            dependency = None

        if dependency is None or not dependency.is_valid():
            self.logger.warning(f"Skipping invalid dependency entry: {item!r}")
            return None
        return dependency


def check_license_compliance(
    dependencies: Any,
    documentation_text: Any,
    policy: Optional[LicensePolicy] = None,
) -> ComplianceResult:
    """
    Check license compliance for dependencies according to the license policy.

    Args:
        dependencies: Dependencies with normalized, pre-split licenses
        documentation_text: Content of the project's README

    Returns:
        Compliance result; compliant when no issues were found
    """
    return LicenseComplianceChecker(policy=policy).check(dependencies, documentation_text)
