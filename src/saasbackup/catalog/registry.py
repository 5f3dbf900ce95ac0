"""
Immutable endpoint catalog keyed by platform type.

Platforms are registered on a :class:`CatalogBuilder`, which validates each
one as it arrives; :meth:`CatalogBuilder.build` then freezes the result into
an :class:`EndpointCatalog` that only offers read-only lookups.

Manifesto:
    A bad dependency graph is a code defect, not a runtime condition. It is
    rejected once, when the platform is registered, so a job never discovers
    a cycle halfway through a backup.

Architecture:
    ::

        CatalogBuilder.register(platform)
            1. unique endpoint names          → DuplicateRegistrationError
            2. dependencies exist             → DependencyError
            3. dependencies form a DAG (DFS)  → CycleDetectedError
            4. stored (rejected platforms leave no trace)
                │
                ▼
        CatalogBuilder.build() → EndpointCatalog (MappingProxyType views)
            .platform(type)   .endpoints(type)   .endpoint(type, name)
            .platform_types()  .execution_order(type, names)

Examples:
    >>> builder = CatalogBuilder()
    >>> builder.register(keap_platform).register(stripe_platform)
    >>> catalog = builder.build()
    >>> catalog.endpoint("keap", "orders").dependencies
    ('contacts', 'products')

Tags:
    catalog, dag, cycle-detection, topological-sort, saasbackup
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable, Mapping, Sequence
from functools import lru_cache
from types import MappingProxyType

from saasbackup.catalog.exceptions import (
    CatalogError,
    CycleDetectedError,
    DependencyError,
    DuplicateRegistrationError,
    UnknownPlatformError,
)
from saasbackup.catalog.models import Platform, PlatformEndpoint
from saasbackup.core.logging import get_logger

logger = get_logger(__name__)


def find_cycle(graph: Mapping[str, Sequence[str]]) -> list[str] | None:
    """
    Return one dependency cycle in *graph*, or ``None`` if it is a DAG.

    Uses depth-first search with three-color marking:
    - WHITE (0): Unvisited
    - GRAY (1): Currently visiting (on current path)
    - BLACK (2): Finished visiting

    Reaching a GRAY node closes a cycle; the returned path starts and ends
    on that node (``["a", "b", "a"]``).
    """
    WHITE, GRAY, BLACK = 0, 1, 2
    color = {node: WHITE for node in graph}
    path: list[str] = []

    def dfs(node: str) -> list[str] | None:
        color[node] = GRAY
        path.append(node)
        for neighbor in graph.get(node, ()):
            if color.get(neighbor, BLACK) == GRAY:
                return path[path.index(neighbor):] + [neighbor]
            if color.get(neighbor) == WHITE:
                cycle = dfs(neighbor)
                if cycle:
                    return cycle
        color[node] = BLACK
        path.pop()
        return None

    for node in graph:
        if color[node] == WHITE:
            cycle = dfs(node)
            if cycle:
                return cycle
    return None


def topological_order(endpoints: Sequence[PlatformEndpoint]) -> list[PlatformEndpoint]:
    """
    Order endpoints dependencies-first using Kahn's algorithm.

    Stable: endpoints that become ready at the same time keep their input
    order. Dependencies outside *endpoints* are ignored.
    """
    names = {e.name for e in endpoints}
    graph: dict[str, list[str]] = defaultdict(list)
    in_degree = {e.name: 0 for e in endpoints}
    by_name = {e.name: e for e in endpoints}

    for endpoint in endpoints:
        for dep in endpoint.dependencies:
            if dep in names:
                graph[dep].append(endpoint.name)
                in_degree[endpoint.name] += 1

    queue = deque(e.name for e in endpoints if in_degree[e.name] == 0)
    result: list[PlatformEndpoint] = []
    while queue:
        node = queue.popleft()
        result.append(by_name[node])
        for neighbor in graph[node]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if len(result) != len(endpoints):
        remaining = [e.name for e in endpoints if e.name not in {r.name for r in result}]
        raise CatalogError(f"Topological sort incomplete. Remaining: {remaining}")
    return result


class EndpointCatalog:
    """Read-only view over validated platforms. Built by :class:`CatalogBuilder`."""

    def __init__(self, platforms: Mapping[str, Platform]):
        self._platforms: Mapping[str, Platform] = MappingProxyType(dict(platforms))
        self._endpoints: Mapping[str, Mapping[str, PlatformEndpoint]] = MappingProxyType(
            {ptype: MappingProxyType({e.name: e for e in p.endpoints}) for ptype, p in platforms.items()}
        )

    def __contains__(self, platform_type: object) -> bool:
        return platform_type in self._platforms

    def __len__(self) -> int:
        return len(self._platforms)

    @property
    def platforms(self) -> Mapping[str, Platform]:
        return self._platforms

    def platform_types(self) -> list[str]:
        return sorted(self._platforms)

    def platform(self, platform_type: str) -> Platform:
        try:
            return self._platforms[platform_type]
        except KeyError:
            raise UnknownPlatformError(platform_type, list(self._platforms)) from None

    def endpoints(self, platform_type: str) -> tuple[PlatformEndpoint, ...]:
        return self.platform(platform_type).endpoints

    def endpoint(self, platform_type: str, name: str) -> PlatformEndpoint:
        self.platform(platform_type)
        try:
            return self._endpoints[platform_type][name]
        except KeyError:
            raise KeyError(
                f"Endpoint '{name}' not found for platform '{platform_type}'. "
                f"Available: {sorted(self._endpoints[platform_type])}"
            ) from None

    def has_endpoint(self, platform_type: str, name: str) -> bool:
        return platform_type in self._endpoints and name in self._endpoints[platform_type]

    def default_endpoints(self, platform_type: str) -> list[str]:
        return [e.name for e in self.endpoints(platform_type) if e.default_enabled]

    def execution_order(self, platform_type: str, names: Iterable[str] | None = None) -> list[PlatformEndpoint]:
        """Endpoints (all, or *names*) in dependency order."""
        wanted = set(names) if names is not None else None
        selected = [e for e in self.endpoints(platform_type) if wanted is None or e.name in wanted]
        return topological_order(selected)


class CatalogBuilder:
    """Collects and validates platforms, then freezes them into a catalog."""

    def __init__(self) -> None:
        self._platforms: dict[str, Platform] = {}

    def register(self, platform: Platform) -> CatalogBuilder:
        """Validate and add *platform*. Raises on any catalog defect."""
        if platform.platform_type in self._platforms:
            raise DuplicateRegistrationError(f"Platform '{platform.platform_type}' is already registered")

        self._validate_unique_names(platform)
        self._validate_dependencies(platform)
        self._validate_no_cycles(platform)

        self._platforms[platform.platform_type] = platform
        logger.debug(
            "catalog.platform_registered",
            platform=platform.platform_type,
            endpoint_count=len(platform.endpoints),
        )
        return self

    def build(self) -> EndpointCatalog:
        return EndpointCatalog(self._platforms)

    @staticmethod
    def _validate_unique_names(platform: Platform) -> None:
        seen: set[str] = set()
        for endpoint in platform.endpoints:
            if endpoint.name in seen:
                raise DuplicateRegistrationError(
                    f"Platform '{platform.platform_type}' declares endpoint '{endpoint.name}' twice"
                )
            seen.add(endpoint.name)

    @staticmethod
    def _validate_dependencies(platform: Platform) -> None:
        names = set(platform.endpoint_names)
        for endpoint in platform.endpoints:
            missing = [dep for dep in endpoint.dependencies if dep not in names]
            if missing:
                raise DependencyError(endpoint.name, missing, platform=platform.platform_type)

    @staticmethod
    def _validate_no_cycles(platform: Platform) -> None:
        graph = {e.name: list(e.dependencies) for e in platform.endpoints}
        cycle = find_cycle(graph)
        if cycle:
            logger.error("catalog.cycle_rejected", platform=platform.platform_type, cycle=cycle)
            raise CycleDetectedError(cycle, platform=platform.platform_type)


@lru_cache(maxsize=1)
def default_catalog() -> EndpointCatalog:
    """Catalog of every platform shipped with the engine, built once."""
    from saasbackup.connectors.registry import default_registry

    return default_registry().catalog


__all__ = [
    "CatalogBuilder",
    "EndpointCatalog",
    "default_catalog",
    "find_cycle",
    "topological_order",
]
