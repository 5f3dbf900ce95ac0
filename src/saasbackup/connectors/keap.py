"""
Keap (formerly Infusionsoft) CRM connector.

Keap list endpoints use limit/offset paging with the records under a key
named after the resource (``{"contacts": [...], "count": 1234}``). Tokens
arrive under several field names depending on which onboarding flow
created the connection; OAuth access tokens are preferred over legacy
personal access tokens / API keys.

Published limits: 4 requests/second, 125/minute, 5000/hour, burst 10. The
hourly quota is the binding one, so a connector spaces requests 0.72s apart.
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
from saasbackup.connectors.auth import AuthConfig, ensure_not_expired, resolve_credential
from saasbackup.connectors.base import BaseConnector

KEAP_BASE_URL = "https://api.infusionsoft.com/crm/rest/v1"
KEAP_PAGE_SIZE = 1000

_PAGING_PARAMS = (
    APIParameter("limit", "integer", default=str(KEAP_PAGE_SIZE), description="Number of records per page"),
    APIParameter("offset", "integer", default="0", description="Record offset for pagination"),
)


def _keap_endpoint(
    name: str,
    description: str,
    *,
    dependencies: tuple[str, ...] = (),
    timestamp_field: str = "",
    incremental: bool = False,
    extra_params: str = "",
    default_enabled: bool = True,
    priority: str = "medium",
) -> PlatformEndpoint:
    parameters = _PAGING_PARAMS
    if incremental:
        parameters += (APIParameter("since", "datetime", description=f"Only return {name} modified since this date"),)
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
            data_path=f"$.{name}",
            id_field="id",
            timestamp_field=timestamp_field,
            pagination_key="offset",
        ),
        options=EndpointOptions(
            entity_key=name,
            limit_param="limit",
            offset_param="offset",
            limit=KEAP_PAGE_SIZE,
            extra_params=extra_params,
            since_param="since" if incremental else None,
            total_key="count",
        ),
    )


KEAP_PLATFORM = Platform(
    platform_type="keap",
    name="Keap",
    category="CRM",
    description="Keap (formerly Infusionsoft) CRM and marketing automation",
    base_url=KEAP_BASE_URL,
    auth_type=AuthType.OAUTH,
    test_path="https://api.infusionsoft.com/crm/rest/v2/businessProfile",
    rate_limits=RateLimitPolicy(requests_per_second=4, requests_per_minute=125, requests_per_hour=5000, burst_limit=10),
    endpoints=(
        _keap_endpoint(
            "contacts",
            "Contact records with custom fields",
            timestamp_field="last_updated",
            incremental=True,
            extra_params="optional_properties=lead_source_id,custom_fields,job_title",
            priority="high",
        ),
        _keap_endpoint("companies", "Company records"),
        _keap_endpoint("products", "Product catalog"),
        _keap_endpoint(
            "opportunities",
            "Sales opportunities and pipeline data",
            dependencies=("contacts",),
            timestamp_field="last_updated",
            incremental=True,
        ),
        _keap_endpoint(
            "orders",
            "E-commerce orders",
            dependencies=("contacts", "products"),
            timestamp_field="order_date",
            incremental=True,
            priority="high",
        ),
        _keap_endpoint(
            "transactions",
            "Payment transactions",
            dependencies=("contacts",),
            timestamp_field="transaction_date",
            incremental=True,
        ),
        _keap_endpoint("subscriptions", "Recurring billing subscriptions", dependencies=("contacts", "products")),
        _keap_endpoint("affiliates", "Affiliate program participants"),
        _keap_endpoint("campaigns", "Marketing campaigns", timestamp_field="created_date"),
        _keap_endpoint("emails", "Email communications", dependencies=("contacts",), default_enabled=False),
        _keap_endpoint("tags", "Contact and company tags"),
        _keap_endpoint("tasks", "Task and appointment records", dependencies=("contacts",)),
        _keap_endpoint("notes", "Contact and opportunity notes", dependencies=("contacts",)),
        _keap_endpoint("files", "File attachments", dependencies=("contacts",), default_enabled=False, priority="low"),
        _keap_endpoint("users", "User accounts and permissions"),
        PlatformEndpoint(
            name="setting",
            path="/setting/application/configuration",
            description="Application settings and configuration",
            data_type="settings",
            default_priority="low",
            default_frequency="weekly",
            response_mapping=ResponseMapping(data_path="$"),
            options=EndpointOptions(entity_key="$"),
        ),
    ),
)


class KeapConnector(BaseConnector):
    """Keap REST v1 connector (test call goes to the v2 business profile)."""

    platform = KEAP_PLATFORM
    credential_aliases = ("access_token", "auth_token", "apiToken", "api_key")

    @classmethod
    def build_auth(cls, credentials: dict[str, Any]) -> AuthConfig:
        ensure_not_expired(credentials, platform=cls.platform.platform_type)
        field_name, token = resolve_credential(credentials, cls.credential_aliases, platform=cls.platform.name)
        if field_name == "access_token":
            return AuthConfig.oauth(token, source_field=field_name)
        return AuthConfig.api_key_auth(token, source_field=field_name)


__all__ = ["KeapConnector", "KEAP_PLATFORM", "KEAP_BASE_URL"]
