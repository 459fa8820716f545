"""Analysis orchestrator — fans a contract out to every requested backend."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence

from chainaudit.analysis.base import Analyzer
from chainaudit.analysis.models import AnalysisResult
from chainaudit.analysis.registry import canonical_name, default_registry, invoke
from chainaudit.errors import InvalidRequestError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class AnalysisOrchestrator:
    """Runs the requested backends concurrently and joins on all of them.

    One backend's failure or timeout never affects the others: each result is
    collected independently, and cancelling :meth:`analyze_contract` cancels
    every backend still running (killing their subprocesses).
    """

    def __init__(
        self,
        registry: Mapping[str, Analyzer] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._registry = registry if registry is not None else default_registry()
        self._timeout = timeout

    @property
    def registry(self) -> Mapping[str, Analyzer]:
        return self._registry

    def resolve_tools(self, tools: Sequence[str]) -> list[str]:
        """Validate the tool list; drop unknown names and duplicates."""
        if isinstance(tools, (str, bytes)) or not isinstance(tools, (list, tuple)):
            raise InvalidRequestError(
                f"tools must be a list of tool names, got {type(tools).__name__}"
            )

        names: list[str] = []
        for tool in tools:
            if not isinstance(tool, str):
                raise InvalidRequestError(
                    f"tool names must be strings, got {type(tool).__name__}"
                )
            name = canonical_name(tool)
            if name not in self._registry:
                logger.warning("Ignoring unknown analysis tool %r", tool)
                continue
            if name not in names:
                names.append(name)
        return names

    async def analyze_contract(
        self,
        source: str,
        tools: Sequence[str],
    ) -> list[AnalysisResult]:
        """One AnalysisResult per valid requested tool, in request order."""
        if not isinstance(source, str):
            raise InvalidRequestError(
                f"source must be a string, got {type(source).__name__}"
            )
        names = self.resolve_tools(tools)
        if not names:
            return []

        tasks = [
            asyncio.create_task(
                invoke(name, source, self._timeout, self._registry),
                name=f"chainaudit-{name}",
            )
            for name in names
        ]
        try:
            results = await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            logger.info("Analysis cancelled; stopping %d backend(s)", len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for result in results:
            if result.failed:
                logger.warning("Backend %s failed: %s", result.tool, result.error)
        return list(results)


async def analyze_contract(
    source: str,
    tools: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    registry: Mapping[str, Analyzer] | None = None,
) -> list[AnalysisResult]:
    orchestrator = AnalysisOrchestrator(registry=registry, timeout=timeout)
    return await orchestrator.analyze_contract(source, tools)


def analyze_contract_sync(
    source: str,
    tools: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    registry: Mapping[str, Analyzer] | None = None,
) -> list[AnalysisResult]:
    """Blocking variant for callers without an event loop."""
    return asyncio.run(analyze_contract(source, tools, timeout, registry))
