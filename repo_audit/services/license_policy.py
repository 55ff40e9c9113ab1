import os
import json
import logging
from functools import lru_cache
from typing import Dict, FrozenSet, List, Optional, Tuple

from repo_audit.core.config import get_settings
from repo_audit.core.exceptions import PolicyConfigurationError
from repo_audit.core.models import LicenseCategory, is_non_empty_string

logger = logging.getLogger(__name__)

DEFAULT_POLICY_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "policy")

CATEGORIES_FILE = "license_categories.json"
ALIASES_FILE = "license_aliases.json"
EXCEPTIONS_FILE = "special_exceptions.json"

# License families whose use must be documented, with the keywords that count
# as documenting them. The first tuple holds the markers that identify the
# family in a license name.
DOCUMENTATION_KEYWORD_FAMILIES: List[Tuple[Tuple[str, ...], Tuple[str, ...]]] = [
    (("lgpl", "lesser general public"), ("lgpl", "lesser general public")),
    (("mpl", "mozilla"), ("mpl", "mozilla public license", "mozilla")),
    (("epl", "eclipse"), ("epl", "eclipse public license", "eclipse")),
    (("cddl", "common development"), ("cddl", "common development", "common development and distribution license")),
]

LESSER_FAMILY_MARKERS = ("lgpl", "lesser general public")


class LicensePolicy:
    """
    Third-party license policy table.

    Holds three pieces of static configuration:
    1. Category map - license name to ASF category (A / B / B_WCL / X)
    2. Alias map - raw license name to canonical (usually SPDX) name
    3. Special exceptions - dependency names (or prefixes) allowed to use
       a prohibited weak-copyleft license when documented
    """

    def __init__(
        self,
        categories: Dict[str, LicenseCategory],
        aliases: Dict[str, str],
        exceptions: Dict[str, bool],
    ):
        self._categories = dict(categories)
        self._categories_folded = {name.lower(): cat for name, cat in categories.items()}
        self._aliases = {raw.strip().lower(): canonical for raw, canonical in aliases.items()}
        # name -> is prefix entry
        self._exceptions = dict(exceptions)

    @classmethod
    def from_directory(cls, policy_dir: Optional[str] = None) -> "LicensePolicy":
        """
        Load the policy from its three JSON data files.

        Args:
            policy_dir: Directory holding the data files; the bundled policy is used when omitted

        Returns:
            Loaded policy

        Raises:
            PolicyConfigurationError: If a file is missing or malformed
        """
        policy_dir = policy_dir or DEFAULT_POLICY_DIR
        logger.debug(f"Loading license policy from {policy_dir}")

        raw_categories = _load_json(os.path.join(policy_dir, CATEGORIES_FILE))
        raw_aliases = _load_json(os.path.join(policy_dir, ALIASES_FILE))
        raw_exceptions = _load_json(os.path.join(policy_dir, EXCEPTIONS_FILE))

        categories: Dict[str, LicenseCategory] = {}
        for tag, names in raw_categories.items():
            try:
                category = LicenseCategory(tag)
            except ValueError:
                raise PolicyConfigurationError(f"Unknown license category '{tag}' in {CATEGORIES_FILE}")
            if not isinstance(names, list):
                raise PolicyConfigurationError(f"Category '{tag}' must map to a list of license names")
            for name in names:
                if is_non_empty_string(name):
                    categories[name.strip()] = category

        aliases = {
            raw: canonical
            for raw, canonical in raw_aliases.items()
            if is_non_empty_string(raw) and is_non_empty_string(canonical)
        }

        exceptions: Dict[str, bool] = {}
        for name, entry in raw_exceptions.items():
            if isinstance(entry, bool):
                applies, prefix = entry, False
            elif isinstance(entry, dict):
                applies = bool(entry.get("applies", True))
                prefix = bool(entry.get("prefix", False))
            else:
                raise PolicyConfigurationError(f"Invalid special exception entry for '{name}'")
            if applies and is_non_empty_string(name):
                exceptions[name.strip()] = prefix

        logger.info(
            f"Loaded license policy: {len(categories)} licenses, "
            f"{len(aliases)} aliases, {len(exceptions)} special exceptions"
        )
        return cls(categories, aliases, exceptions)

    def normalize(self, license_name: str) -> str:
        """
        Normalize a license name to its canonical form.

        Args:
            license_name: Raw license name

        Returns:
            Canonical name, or the trimmed input when no alias is known
        """
        if not is_non_empty_string(license_name):
            return ""
        trimmed = license_name.strip()
        return self._aliases.get(trimmed.lower(), trimmed)

    def category_of(self, license_name: str) -> Optional[LicenseCategory]:
        """
        Look up the policy category for a license.

        The normalized name is tried first, then the raw name verbatim and
        finally a case-insensitive match. Never raises; unknown licenses
        return None.
        """
        if not is_non_empty_string(license_name):
            return None

        normalized = self.normalize(license_name)
        for candidate in (normalized, license_name.strip()):
            category = self._categories.get(candidate)
            if category is not None:
                return category

        return (
            self._categories_folded.get(normalized.lower())
            or self._categories_folded.get(license_name.strip().lower())
        )

    def is_special_exception(self, dependency_name: str) -> bool:
        if not is_non_empty_string(dependency_name):
            return False
        for name, is_prefix in self._exceptions.items():
            if dependency_name == name or (is_prefix and dependency_name.startswith(name)):
                return True
        return False

    def licenses_in_category(self, category: LicenseCategory) -> FrozenSet[str]:
        return frozenset(name for name, cat in self._categories.items() if cat == category)

    @staticmethod
    def is_lesser_family(license_name: str) -> bool:
        """Check if a license belongs to the LGPL ("Lesser") family."""
        if not is_non_empty_string(license_name):
            return False
        lowered = license_name.lower()
        return any(marker in lowered for marker in LESSER_FAMILY_MARKERS)

    @staticmethod
    def documentation_keywords(license_name: str) -> List[str]:
        """
        Get the keywords that indicate a license is documented.

        Args:
            license_name: License name to get keywords for

        Returns:
            Keywords of every family the license belongs to
        """
        if not is_non_empty_string(license_name):
            return []

        lowered = license_name.lower()
        keywords: List[str] = []
        for markers, family_keywords in DOCUMENTATION_KEYWORD_FAMILIES:
            if any(marker in lowered for marker in markers):
                keywords.extend(family_keywords)
        return keywords


def _load_json(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise PolicyConfigurationError(f"License policy file not found: {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise PolicyConfigurationError(f"Could not read license policy file {path}: {str(e)}")

    if not isinstance(data, dict):
        raise PolicyConfigurationError(f"License policy file {path} must contain a JSON object")
    return data


@lru_cache()
def get_license_policy() -> LicensePolicy:
    """Get the process-wide license policy, loaded once."""
    return LicensePolicy.from_directory(get_settings().POLICY_DIR)
