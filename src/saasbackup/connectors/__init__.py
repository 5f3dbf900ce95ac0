"""Platform connectors and the shared paginated fetch engine."""

from saasbackup.connectors.auth import AuthConfig, AuthStyle, resolve_credential
from saasbackup.connectors.base import BaseConnector, Connector
from saasbackup.connectors.keap import KeapConnector
from saasbackup.connectors.rate_limit import IntervalRateLimiter, RateLimiter, TokenBucketRateLimiter
from saasbackup.connectors.registry import ConnectorRegistry, default_registry, get_connector, list_connectors
from saasbackup.connectors.stripe import StripeConnector

__all__ = [
    "AuthConfig",
    "AuthStyle",
    "resolve_credential",
    "Connector",
    "BaseConnector",
    "RateLimiter",
    "IntervalRateLimiter",
    "TokenBucketRateLimiter",
    "ConnectorRegistry",
    "default_registry",
    "get_connector",
    "list_connectors",
    "KeapConnector",
    "StripeConnector",
]
