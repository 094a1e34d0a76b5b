"""View strategies and the ranked fallback chain that runs them."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from .errors import CollaboratorError
from .graph_model import ArchitectureGraph

logger = logging.getLogger(__name__)


class ViewStrategy(ABC):
    strategy_name: str

    @abstractmethod
    async def run(self, context: Dict[str, Any]) -> ArchitectureGraph:
        raise NotImplementedError


@dataclass
class FallbackResult:
    graph: ArchitectureGraph
    strategy_name: str
    tier: int
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.tier > 0


class FallbackChain:
    """Runs strategies in rank order; the first one that does not fail wins.

    Strategies fail by raising ``CollaboratorError``. Anything else is a bug
    and propagates.
    """

    def __init__(self, strategies: Iterable[ViewStrategy]) -> None:
        self.strategies: List[ViewStrategy] = list(strategies)

    async def run(self, context: Dict[str, Any]) -> FallbackResult:
        failures: List[Tuple[str, str]] = []
        for tier, strategy in enumerate(self.strategies):
            try:
                graph = await strategy.run(dict(context))
            except CollaboratorError as error:
                logger.warning("Strategy '%s' failed: %s", strategy.strategy_name, error)
                failures.append((strategy.strategy_name, str(error)))
                continue
            if not isinstance(graph, ArchitectureGraph):
                raise TypeError(f"Strategy '{strategy.strategy_name}' must return ArchitectureGraph.")
            return FallbackResult(graph=graph, strategy_name=strategy.strategy_name, tier=tier, failures=failures)

        names = ", ".join(strategy.strategy_name for strategy in self.strategies) or "none"
        raise CollaboratorError(f"All strategies failed ({names})")
