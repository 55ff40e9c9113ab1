from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


class LicenseCategory(str, Enum):
    """Policy buckets for third-party licenses (ASF categories)."""

    APPROVED = "A"
    CONDITIONAL = "B"
    CONDITIONAL_WITH_CAVEAT = "B_WCL"  # weak copyleft, needs extra scrutiny
    PROHIBITED = "X"

    @property
    def requires_documentation(self) -> bool:
        return self in (LicenseCategory.CONDITIONAL, LicenseCategory.CONDITIONAL_WITH_CAVEAT)


class LicenseIssueType(str, Enum):
    NO_LICENSE_INFO = "no-license-info"
    UNKNOWN_LICENSE = "unknown-license"
    UNDOCUMENTED_CONDITIONAL = "undocumented-conditional"
    PROHIBITED_VIOLATION = "prohibited-violation"
    PARSER_CONTRACT_VIOLATION = "parser-contract-violation"


class EvaluationStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    MANUAL = "MANUAL"


def is_non_empty_string(value: Any) -> bool:
    """Check that a value is a string with visible content."""
    return isinstance(value, str) and bool(value.strip())


@dataclass(frozen=True)
class Dependency:
    """
    One resolved third-party package reference.

    ``licenses`` is a disjunction: the dependency is compliant if any listed
    license is. ``None`` (or an empty tuple) means licensing is unknown.
    """

    name: str
    version: str
    licenses: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if self.licenses is not None and not isinstance(self.licenses, tuple):
            object.__setattr__(self, "licenses", tuple(self.licenses))

    def __str__(self) -> str:
        return f"{self.name}:{self.version}"

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.version)

    @property
    def has_licenses(self) -> bool:
        return bool(self.licenses)

    def is_valid(self) -> bool:
        return is_non_empty_string(self.name) and is_non_empty_string(self.version)

    @classmethod
    def from_mapping(cls, data: Any) -> Optional["Dependency"]:
        """
        Validating decode of a loosely-typed mapping.

        Args:
            data: Mapping with ``name``, ``version`` and optional ``licenses``

        Returns:
            Dependency, or None when a required field is missing or not a string
        """
        if not isinstance(data, Mapping):
            return None

        name = data.get("name")
        version = data.get("version")
        if not is_non_empty_string(name) or not is_non_empty_string(version):
            return None

        raw_licenses = data.get("licenses")
        licenses: Optional[Tuple[str, ...]] = None
        if isinstance(raw_licenses, str):
            licenses = (raw_licenses,)
        elif isinstance(raw_licenses, Sequence):
            licenses = tuple(l for l in raw_licenses if isinstance(l, str))

        return cls(name=name.strip(), version=version.strip(), licenses=licenses)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "version": self.version,
            "licenses": list(self.licenses) if self.licenses is not None else None,
        }


@dataclass
class ExtractionError:
    """A fatal error or degraded-result warning raised while extracting dependencies."""

    source: str
    message: str
    error: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "message": self.message,
            "error": str(self.error) if self.error is not None else None,
        }


@dataclass
class ExtractionResult:
    dependencies: List[Dependency] = field(default_factory=list)
    errors: List[ExtractionError] = field(default_factory=list)
    warnings: List[ExtractionError] = field(default_factory=list)

    def extend(self, other: "ExtractionResult") -> None:
        self.dependencies.extend(other.dependencies)
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dependencies": [d.to_dict() for d in self.dependencies],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class ComplianceIssue:
    dependency: Dependency
    reason: str
    issue_type: LicenseIssueType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dependency": self.dependency.to_dict(),
            "reason": self.reason,
            "issue_type": self.issue_type.value,
        }


@dataclass
class ComplianceResult:
    issues: List[ComplianceIssue] = field(default_factory=list)

    @property
    def compliant(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compliant": self.compliant,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class CriterionResult:
    """Outcome of one acceptance criterion."""

    criterion_id: str
    status: EvaluationStatus
    evidence: str
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "criterion_id": self.criterion_id,
            "status": self.status.value,
            "evidence": self.evidence,
            "details": self.details,
        }
