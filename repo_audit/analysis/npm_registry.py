import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp

from repo_audit.analysis.dependency_parser import strip_version_range
from repo_audit.core.config import Settings, get_settings
from repo_audit.core.models import is_non_empty_string

logger = logging.getLogger(__name__)

_MISSING = object()


class LicenseLookupCache:
    """Registry lookup results keyed by (package name, version spec); last write wins."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], Optional[str]] = {}

    def get(self, name: str, version_spec: str, default: Any = None) -> Any:
        return self._entries.get((name, version_spec), default)

    def set(self, name: str, version_spec: str, license_expression: Optional[str]) -> None:
        self._entries[(name, version_spec)] = license_expression

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


def encode_package_name(name: str) -> str:
    """Scoped packages keep the leading @ but escape the slash (@scope%2Fname)."""
    return name.replace("/", "%2F")


def license_from_metadata(data: Any) -> Optional[str]:
    """
    Pull the license expression out of registry package metadata.

    Handles ``license`` as a string or ``{"type": ...}`` object and the legacy
    ``licenses: [{"type": ...}]`` list, which is joined as an OR expression.

    Args:
        data: Version document returned by the registry

    Returns:
        License expression, or None when the package declares none
    """
    if not isinstance(data, dict):
        return None

    license_data = data.get("license")
    if is_non_empty_string(license_data):
        return license_data.strip()
    if isinstance(license_data, dict) and is_non_empty_string(license_data.get("type")):
        return license_data["type"].strip()

    legacy = data.get("licenses")
    if isinstance(legacy, list):
        names = []
        for entry in legacy:
            if is_non_empty_string(entry):
                names.append(entry.strip())
            elif isinstance(entry, dict) and is_non_empty_string(entry.get("type")):
                names.append(entry["type"].strip())
        if names:
            return " OR ".join(names)

    return None


class RegistryLicenseResolver:
    """
    Looks up declared licenses of npm packages in the registry.

    Lookups run concurrently, bounded by ``NPM_REGISTRY_CONCURRENCY``, and are
    memoized per resolver instance. Network problems resolve to None.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        cache: Optional[LicenseLookupCache] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or get_settings()
        self.registry_url = self.settings.NPM_REGISTRY_URL.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=self.settings.NPM_REGISTRY_TIMEOUT)
        self.cache = cache if cache is not None else LicenseLookupCache()
        self.logger = logger or logging.getLogger(__name__)
        self._session = session

    async def resolve_many(self, packages: Sequence[Tuple[str, str]]) -> List[Optional[str]]:
        """
        Resolve licenses for several packages.

        Args:
            packages: (name, version spec) pairs

        Returns:
            License expressions (or None) in input order
        """
        if not packages:
            return []

        if self._session is not None:
            return await self._gather(self._session, packages)

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            return await self._gather(session, packages)

    async def _gather(self, session, packages: Sequence[Tuple[str, str]]) -> List[Optional[str]]:
        # A semaphore binds to the event loop that first waits on it
        semaphore = asyncio.Semaphore(self.settings.NPM_REGISTRY_CONCURRENCY)
        return list(await asyncio.gather(
            *(self.resolve(name, version_spec, session, semaphore) for name, version_spec in packages)
        ))

    async def resolve(
        self, name: str, version_spec: str, session=None, semaphore: Optional[asyncio.Semaphore] = None
    ) -> Optional[str]:
        """
        Resolve the declared license of one package version.

        Tries the exact version first and falls back to ``latest`` when the
        registry does not know it.
        """
        cached = self.cache.get(name, version_spec, _MISSING)
        if cached is not _MISSING:
            return cached

        session = session or self._session
        if session is None:
            async with aiohttp.ClientSession(timeout=self.timeout) as owned:
                return await self.resolve(name, version_spec, owned, semaphore)

        version = strip_version_range(version_spec) or "latest"
        semaphore = semaphore or asyncio.Semaphore(self.settings.NPM_REGISTRY_CONCURRENCY)
        async with semaphore:
            data = await self._fetch(session, name, version)
            if data is None and version != "latest":
                self.logger.debug(f"{name}@{version} not found in registry, trying latest")
                data = await self._fetch(session, name, "latest")

        license_expression = license_from_metadata(data)
        self.cache.set(name, version_spec, license_expression)
        return license_expression

    async def _fetch(self, session, name: str, version: str) -> Optional[Dict[str, Any]]:
        url = f"{self.registry_url}/{encode_package_name(name)}/{version}"
        try:
            async with session.get(url, timeout=self.timeout) as response:
                if response.status != 200:
                    self.logger.debug(f"Registry returned {response.status} for {url}")
                    return None
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning(f"Registry lookup failed for {name}@{version}: {str(e)}")
            return None
