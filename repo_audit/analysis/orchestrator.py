import os
import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from repo_audit.analysis.dependency_parser import DependencyParser, DependencyParserFactory
from repo_audit.core.models import (
    Dependency,
    ExtractionError,
    ExtractionResult,
    is_non_empty_string,
)

logger = logging.getLogger(__name__)

ORCHESTRATOR_SOURCE = "dependency-orchestrator"


def deduplicate_dependencies(dependencies: Sequence[Dependency]) -> List[Dependency]:
    """
    Remove duplicate dependencies by (name, version).

    A record carrying licenses replaces a license-less one with the same key,
    whichever came first. Otherwise the first occurrence is kept.

    Args:
        dependencies: Dependencies to deduplicate

    Returns:
        Unique dependencies in first-seen order
    """
    unique: Dict[Tuple[str, str], Dependency] = {}
    for dependency in dependencies:
        if not isinstance(dependency, Dependency) or not dependency.is_valid():
            continue
        existing = unique.get(dependency.key)
        if existing is None or (not existing.has_licenses and dependency.has_licenses):
            unique[dependency.key] = dependency
    return list(unique.values())


class DependencyOrchestrator:
    """
    Runs every applicable ecosystem parser against a repository and merges
    their results.

    Extraction never raises: parser failures, including unexpected
    exceptions, are reported as errors of the failing ecosystem while the
    other ecosystems still contribute.
    """

    def __init__(
        self,
        parsers: Optional[List[DependencyParser]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self._parsers = parsers

    @property
    def parsers(self) -> List[DependencyParser]:
        if self._parsers is None:
            self._parsers = DependencyParserFactory.create_all(logger=self.logger)
        return self._parsers

    async def extract_dependencies_async(self, repository_root: str) -> ExtractionResult:
        """
        Extract dependencies from a repository using the detected build tools.

        Args:
            repository_root: Path to the checked-out repository

        Returns:
            Merged, deduplicated extraction result
        """
        if not is_non_empty_string(repository_root):
            return ExtractionResult(errors=[ExtractionError(
                source=ORCHESTRATOR_SOURCE,
                message="Repository path must be a non-empty string",
                error=ValueError("Invalid path parameter"),
            )])

        try:
            return await self._extract(repository_root)
        except Exception as e:
            self.logger.error(f"Error extracting dependencies from {repository_root}: {str(e)}")
            return ExtractionResult(errors=[ExtractionError(
                source=ORCHESTRATOR_SOURCE,
                message=f"Error extracting dependencies from {repository_root}",
                error=e,
            )])

    def extract_dependencies(self, repository_root: str) -> ExtractionResult:
        """Blocking variant of :meth:`extract_dependencies_async` for callers without an event loop."""
        return asyncio.run(self.extract_dependencies_async(repository_root))

    async def _extract(self, repository_root: str) -> ExtractionResult:
        merged = ExtractionResult()

        if not os.path.exists(repository_root):
            merged.warnings.append(ExtractionError(
                source=ORCHESTRATOR_SOURCE,
                message=f"Repository path does not exist: {repository_root}",
            ))
            return merged

        detected = [parser for parser in self.parsers if parser.detect(repository_root)]
        self.logger.info(
            f"Detected build tools in {repository_root}: "
            f"{', '.join(p.ecosystem.value for p in detected) or 'none'}"
        )

        results = await asyncio.gather(
            *(parser.extract(repository_root) for parser in detected),
            return_exceptions=True,
        )

        for parser, result in zip(detected, results):
            if isinstance(result, ExtractionResult):
                merged.extend(result)
                continue
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                # Cancellation and interpreter exit
                raise result

            if not isinstance(result, Exception):
                result = TypeError(f"parser returned {type(result).__name__} instead of an extraction result")
            self.logger.error(f"{parser.source} failed unexpectedly: {str(result)}")
            merged.errors.append(ExtractionError(
                source=parser.source,
                message=f"Unexpected error while extracting {parser.ecosystem.value} dependencies: {str(result)}",
                error=result,
            ))

        if not detected and not merged.dependencies and not merged.errors:
            merged.warnings.append(ExtractionError(
                source=ORCHESTRATOR_SOURCE,
                message="No supported build tools found (Maven, Gradle, npm).",
            ))

        merged.dependencies = deduplicate_dependencies(merged.dependencies)
        self.logger.info(
            f"Extracted {len(merged.dependencies)} dependencies with "
            f"{len(merged.errors)} errors and {len(merged.warnings)} warnings"
        )
        return merged


async def extract_dependencies_async(repository_root: str) -> ExtractionResult:
    return await DependencyOrchestrator().extract_dependencies_async(repository_root)


def extract_dependencies(repository_root: str) -> ExtractionResult:
    """
    Extract third-party dependencies of a repository.

    Args:
        repository_root: Path to the checked-out repository

    Returns:
        Extraction result; never raises
    """
    return DependencyOrchestrator().extract_dependencies(repository_root)
