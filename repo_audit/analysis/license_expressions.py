"""
License expression splitting.

Parsers must hand the compliance checker atomic license names. Maven reports
dual licenses as ``Apache-2.0|MIT``; npm and Gradle use SPDX expressions such
as ``(MIT OR Apache-2.0)``. Both are split here and every part is normalized
through the license policy.

Only ``OR``/``AND`` combinations with surrounding parentheses are handled.
``WITH`` clauses and deeply nested groupings are not fully parsed and are
left for the compliance checker to report.
"""
import logging
from typing import List, Optional

from repo_audit.core.models import is_non_empty_string
from repo_audit.services.license_policy import LicensePolicy, get_license_policy

logger = logging.getLogger(__name__)

SPDX_OPERATORS = (" OR ", " AND ")


def _normalize(license_name: str, policy: LicensePolicy) -> str:
    normalized = policy.normalize(license_name)
    if not normalized:
        logger.warning(f"License normalization failed for '{license_name}', using original value")
        return license_name.strip()
    return normalized


def _strip_parentheses(expression: str) -> str:
    cleaned = expression.strip()
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def split_spdx_expression(expression: str, policy: Optional[LicensePolicy] = None) -> List[str]:
    """
    Split an SPDX license expression into atomic, normalized license names.

    Examples:
        "MIT OR Apache-2.0"   -> ["MIT", "Apache-2.0"]
        "(MIT OR GPL-2.0)"    -> ["MIT", "GPL-2.0"]
        "MIT"                 -> ["MIT"]

    ``AND`` is treated like ``OR``: any compliant part makes the dependency pass.

    Args:
        expression: SPDX license expression
        policy: License policy used for normalization

    Returns:
        Atomic license names in declaration order
    """
    if not is_non_empty_string(expression):
        return []
    policy = policy or get_license_policy()

    cleaned = _strip_parentheses(expression)
    for operator in SPDX_OPERATORS:
        if operator in cleaned:
            result: List[str] = []
            for part in cleaned.split(operator):
                if is_non_empty_string(part):
                    result.extend(split_spdx_expression(part, policy))
            return result

    return [_normalize(cleaned, policy)]


def split_pipe_licenses(license_name: str, policy: Optional[LicensePolicy] = None) -> List[str]:
    """
    Split a Maven license string on the pipe separator ("Apache-2.0|MIT").

    Args:
        license_name: License string that may contain pipe-separated licenses
        policy: License policy used for normalization

    Returns:
        Normalized individual licenses
    """
    if not is_non_empty_string(license_name):
        return []
    policy = policy or get_license_policy()

    return [
        _normalize(part, policy)
        for part in license_name.split("|")
        if is_non_empty_string(part)
    ]


def unique(licenses: List[str]) -> List[str]:
    """Drop repeated license names, keeping declaration order."""
    seen = set()
    result = []
    for license_name in licenses:
        if license_name not in seen:
            seen.add(license_name)
            result.append(license_name)
    return result
