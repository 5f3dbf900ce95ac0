"""Catalog errors. All are configuration errors: they reject a platform at load."""

from saasbackup.core.errors import ConfigurationError


class CatalogError(ConfigurationError):
    """Base exception for endpoint catalog errors."""

    pass


class CycleDetectedError(CatalogError):
    """Raised when endpoint dependencies contain a cycle."""

    def __init__(self, cycle: list[str], platform: str | None = None):
        self.cycle = cycle
        cycle_str = " -> ".join(cycle)
        where = f" for platform '{platform}'" if platform else ""
        super().__init__(f"Cycle detected in endpoint dependencies{where}: {cycle_str}")
        self.with_context(platform=platform)


class DependencyError(CatalogError):
    """Raised when an endpoint depends on endpoints that do not exist."""

    def __init__(self, endpoint: str, missing_deps: list[str], platform: str | None = None):
        self.endpoint = endpoint
        self.missing_deps = missing_deps
        deps_str = ", ".join(missing_deps)
        super().__init__(f"Endpoint '{endpoint}' depends on unknown endpoints: {deps_str}")
        self.with_context(platform=platform, endpoint=endpoint)


class UnknownPlatformError(CatalogError):
    """Raised when a platform type is not in the catalog or registry."""

    def __init__(self, platform_type: str, available: list[str]):
        self.platform_type = platform_type
        self.available = available
        super().__init__(
            f"Unknown platform type '{platform_type}'. Available: {', '.join(sorted(available)) or '(none)'}"
        )


class UnknownEndpointError(CatalogError):
    """Raised when a Source selects endpoints its platform does not offer."""

    def __init__(self, platform_type: str, unknown: list[str]):
        self.platform_type = platform_type
        self.unknown = unknown
        super().__init__(f"Platform '{platform_type}' has no endpoints named: {', '.join(unknown)}")
        self.with_context(platform=platform_type)


class DuplicateRegistrationError(CatalogError):
    """Raised when a platform type or endpoint name is registered twice."""
