"""
Foreign-key dependency traversal for pgreconcile.

A ``DependencyResolver`` lives for exactly one top-level reconciliation call.
Tables are visited depth-first: before a foreign key is created, the table
it points at is reconciled through the same resolver. Each model is visited
at most once per call, which both breaks reference cycles and avoids
re-reading the catalog for a target referenced by many columns.
"""

import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Set

from .descriptor import TableDescriptor


logger = logging.getLogger(__name__)


ReconcileFn = Callable[[TableDescriptor], Awaitable[object]]


class DependencyResolver:
    """Per-invocation traversal of the table dependency graph."""

    def __init__(self, reconcile: ReconcileFn):
        self._reconcile = reconcile
        self._visited: Set[str] = set()
        self._order: List[str] = []
        self.edges: Dict[str, Set[str]] = defaultdict(set)

    def is_visited(self, model_name: str) -> bool:
        return model_name in self._visited

    @property
    def visited(self) -> Set[str]:
        return set(self._visited)

    @property
    def order(self) -> List[str]:
        """Model names in the order their reconciliation started."""
        return list(self._order)

    async def visit(self, descriptor: TableDescriptor) -> bool:
        """
        Reconcile a table unless it was already visited in this call.

        The model is marked before its reconciliation starts, so a chain of
        references leading back to it stops here.
        """
        name = descriptor.model_name
        if name in self._visited:
            logger.debug(f"Skipping {name}: already reconciled in this pass")
            return False

        self._visited.add(name)
        self._order.append(name)
        await self._reconcile(descriptor)
        return True

    async def require(self, source: TableDescriptor, target: TableDescriptor) -> bool:
        """Record that ``source`` references ``target`` and make sure ``target`` is reconciled."""
        self.edges[source.model_name].add(target.model_name)
        return await self.visit(target)

    def dependencies_of(self, model_name: str) -> Set[str]:
        return set(self.edges.get(model_name, ()))
