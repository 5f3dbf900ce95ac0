"""Endpoint planner: turns a Source's endpoint selection into an execution order.

A Source names the endpoints it wants; the planner validates those names
against the catalog, adds whatever they depend on (transitively), and
returns the set in dependency order. Ties keep catalog order, so the same
selection always produces the same plan.

Example::

    order = plan_endpoints(catalog, "keap", ["orders"])
    [e.name for e in order]
    # ['contacts', 'products', 'orders']
"""

from __future__ import annotations

from collections.abc import Iterable

from saasbackup.catalog.exceptions import UnknownEndpointError
from saasbackup.catalog.models import PlatformEndpoint
from saasbackup.catalog.registry import EndpointCatalog, topological_order
from saasbackup.core.logging import get_logger

logger = get_logger(__name__)


def plan_endpoints(
    catalog: EndpointCatalog,
    platform_type: str,
    selected: Iterable[str] | None = None,
) -> list[PlatformEndpoint]:
    """Resolve *selected* endpoint names into a dependency-ordered plan.

    Args:
        catalog: Validated endpoint catalog.
        platform_type: Platform the Source runs against.
        selected: Endpoint names, or ``None`` for the platform's
            default-enabled endpoints.

    Raises:
        UnknownPlatformError: *platform_type* is not in the catalog.
        UnknownEndpointError: a selected name is not offered by the platform.
    """
    endpoints = catalog.endpoints(platform_type)
    by_name = {e.name: e for e in endpoints}

    wanted = catalog.default_endpoints(platform_type) if selected is None else list(dict.fromkeys(selected))
    unknown = [name for name in wanted if name not in by_name]
    if unknown:
        raise UnknownEndpointError(platform_type, unknown)

    included: set[str] = set()
    stack = list(wanted)
    while stack:
        name = stack.pop()
        if name in included:
            continue
        included.add(name)
        stack.extend(dep for dep in by_name[name].dependencies if dep not in included)

    added = sorted(included.difference(wanted))
    if added:
        logger.info("planner.dependencies_added", platform=platform_type, added=added)

    plan = topological_order([e for e in endpoints if e.name in included])
    logger.debug("planner.plan_built", platform=platform_type, order=[e.name for e in plan])
    return plan


__all__ = ["plan_endpoints"]
