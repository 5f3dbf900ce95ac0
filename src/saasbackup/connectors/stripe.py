"""
Stripe payments connector.

Stripe list endpoints return ``{"object": "list", "data": [...],
"has_more": true}`` and paginate by cursor: the next page is requested with
``starting_after=<id of the last record>``. Incremental runs filter on the
``created`` epoch timestamp with ``created[gte]``.

The secret key is validated before any request: it must be a standard
(``sk_``) or restricted (``rk_``) key in test or live mode. A connection
without a key is a configuration error; there is no fallback key.
"""

from __future__ import annotations

from typing import Any

from saasbackup.catalog.models import (
    APIParameter,
    AuthType,
    EndpointOptions,
    Platform,
    PlatformEndpoint,
    RateLimitPolicy,
    ResponseMapping,
)
from saasbackup.connectors.auth import AuthConfig, resolve_credential
from saasbackup.connectors.base import BaseConnector
from saasbackup.core.errors import InvalidCredentialError

STRIPE_BASE_URL = "https://api.stripe.com/v1"
STRIPE_PAGE_SIZE = 100
STRIPE_KEY_PREFIXES = ("sk_test_", "sk_live_", "rk_test_", "rk_live_")


def _stripe_endpoint(
    name: str,
    description: str,
    *,
    dependencies: tuple[str, ...] = (),
    incremental: bool = True,
    default_enabled: bool = True,
    priority: str = "medium",
    extra_params: str = "",
) -> PlatformEndpoint:
    parameters = (
        APIParameter("limit", "integer", default=str(STRIPE_PAGE_SIZE), description="Objects per page (1-100)"),
        APIParameter("starting_after", "string", description="Cursor: id of the last object of the previous page"),
    )
    if incremental:
        parameters += (APIParameter("created[gte]", "integer", description="Only objects created at or after this epoch"),)
    return PlatformEndpoint(
        name=name,
        path=f"/{name}",
        description=description,
        data_type=name,
        default_enabled=default_enabled,
        default_priority=priority,
        supports_incremental=incremental,
        dependencies=dependencies,
        parameters=parameters,
        response_mapping=ResponseMapping(
            data_path="$.data",
            id_field="id",
            timestamp_field="created" if incremental else "",
            pagination_key="starting_after",
        ),
        options=EndpointOptions(
            entity_key="data",
            limit_param="limit",
            limit=STRIPE_PAGE_SIZE,
            cursor_param="starting_after",
            has_more_key="has_more",
            extra_params=extra_params,
            since_param="created[gte]" if incremental else None,
            id_field="id",
        ),
    )


STRIPE_PLATFORM = Platform(
    platform_type="stripe",
    name="Stripe",
    category="Payments",
    description="Stripe payments, billing and subscriptions",
    base_url=STRIPE_BASE_URL,
    auth_type=AuthType.API_KEY,
    test_path="/account",
    rate_limits=RateLimitPolicy(requests_per_second=25, burst_limit=100),
    endpoints=(
        _stripe_endpoint("customers", "Customer records", priority="high"),
        _stripe_endpoint("products", "Products and services"),
        _stripe_endpoint("prices", "Product pricing", dependencies=("products",)),
        _stripe_endpoint("charges", "Payment charges", dependencies=("customers",), priority="high"),
        _stripe_endpoint(
            "subscriptions",
            "Customer subscriptions, including canceled ones",
            dependencies=("customers", "prices"),
            extra_params="status=all",
        ),
        _stripe_endpoint("invoices", "Customer invoices", dependencies=("customers", "subscriptions")),
        _stripe_endpoint("payment_methods", "Customer payment methods", dependencies=("customers",), incremental=False),
        _stripe_endpoint("payment_intents", "Payment intents", dependencies=("customers",)),
        _stripe_endpoint("refunds", "Payment refunds", dependencies=("charges",)),
        _stripe_endpoint("disputes", "Payment disputes", dependencies=("charges",)),
        _stripe_endpoint("balance_transactions", "Balance transactions"),
        _stripe_endpoint("transfers", "Money transfers"),
        _stripe_endpoint("application_fees", "Application fees", default_enabled=False),
        _stripe_endpoint("events", "API events log (30 day retention)", default_enabled=False, priority="low"),
    ),
)


class StripeConnector(BaseConnector):
    """Stripe REST v1 connector using a secret or restricted API key."""

    platform = STRIPE_PLATFORM
    credential_aliases = ("test_key", "live_key", "api_key", "secret_key")

    @classmethod
    def build_auth(cls, credentials: dict[str, Any]) -> AuthConfig:
        field_name, api_key = resolve_credential(credentials, cls.credential_aliases, platform=cls.platform.name)
        if not api_key.startswith(STRIPE_KEY_PREFIXES):
            raise InvalidCredentialError(
                f"Invalid Stripe API key in '{field_name}': must start with one of {', '.join(STRIPE_KEY_PREFIXES)}"
            ).with_context(platform=cls.platform.platform_type)
        return AuthConfig.api_key_auth(api_key, source_field=field_name)

    @property
    def live_mode(self) -> bool:
        return "_live_" in (self.auth.api_key or "")


__all__ = ["StripeConnector", "STRIPE_PLATFORM", "STRIPE_BASE_URL", "STRIPE_KEY_PREFIXES"]
