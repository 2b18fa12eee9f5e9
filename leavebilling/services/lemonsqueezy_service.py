# leavebilling/services/lemonsqueezy_service.py
from typing import Any, Callable, Dict, Optional

import httpx

from leavebilling.billing.identifiers import (
    ProductId,
    SubscriptionId,
    SubscriptionItemId,
    VariantId,
)
from leavebilling.billing.provider import (
    BillingProvider,
    CheckoutSession,
    ProviderSubscription,
    QuantityUpdate,
)
from leavebilling.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderResponseError,
)
from leavebilling.core.logging import logger
from leavebilling.core.timeutils import parse_timestamp

JSON_API = "application/vnd.api+json"


class LemonSqueezyService(BillingProvider):
    """Service for Lemon Squeezy subscription billing (JSON:API over httpx)"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.lemonsqueezy.com/v1",
        timeout: float = 15.0,
        store_id: Optional[str] = None,
        test_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError("Lemon Squeezy API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.store_id = store_id
        self.test_mode = test_mode
        self.transport = transport

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "LemonSqueezyService":
        if not settings.LEMONSQUEEZY_API_KEY:
            raise ConfigurationError("Lemon Squeezy configuration missing")
        return cls(
            api_key=settings.LEMONSQUEEZY_API_KEY,
            base_url=settings.LEMONSQUEEZY_BASE_URL,
            timeout=settings.LEMONSQUEEZY_TIMEOUT_SECONDS,
            store_id=settings.LEMONSQUEEZY_STORE_ID,
            test_mode=settings.LEMONSQUEEZY_TEST_MODE,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        parser: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Any:
        """
        Make a single request. Timeouts and transport failures are reported
        as ProviderError exactly like non-success responses; nothing is retried.

        With ``parser`` the decoded body is passed through it, and a body the
        parser cannot read raises ProviderResponseError.
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    json=payload,
                    headers={
                        "Accept": JSON_API,
                        "Content-Type": JSON_API,
                        "Authorization": f"Bearer {self.api_key}",
                    },
                )
        except httpx.TimeoutException as e:
            logger.error(f"Lemon Squeezy {method} {path} timed out")
            raise ProviderError("Billing provider timed out", provider_detail=str(e) or "timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"Lemon Squeezy {method} {path} failed: {str(e)}")
            raise ProviderError("Billing provider request failed", provider_detail=str(e)) from e

        try:
            result = response.json()
        except ValueError:
            result = {}

        if not response.is_success:
            detail = _error_detail(result) or response.reason_phrase
            logger.error(f"Lemon Squeezy {method} {path} -> {response.status_code}: {detail}")
            raise ProviderError(
                f"Billing provider rejected the request: {detail}",
                provider_detail=detail,
                upstream_status=response.status_code,
            )

        logger.info(f"Lemon Squeezy {method} {path} -> {response.status_code}")
        if parser is None:
            return result

        try:
            return parser(result)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Lemon Squeezy {method} {path} -> {response.status_code} with unreadable body: {e}")
            raise ProviderResponseError(
                "Billing provider returned an unreadable response",
                provider_detail=str(e),
                upstream_status=response.status_code,
            ) from e

    async def get_subscription(self, subscription_id: SubscriptionId) -> ProviderSubscription:
        return await self._request("GET", f"/subscriptions/{subscription_id}", parser=_subscription_body)

    async def update_quantity(
        self,
        subscription_item_id: SubscriptionItemId,
        quantity: int,
        invoice_immediately: bool,
        usage_based: bool,
    ) -> QuantityUpdate:
        def read_update(result: Dict[str, Any]) -> QuantityUpdate:
            data = result.get("data") or {}
            attributes = data.get("attributes") or {}
            return QuantityUpdate(
                quantity=int(attributes.get("quantity", quantity)),
                record_id=str(data["id"]) if data.get("id") is not None else None,
            )

        if usage_based:
            # Metered items take an absolute usage record, billed at period end
            return await self._request("POST", "/usage-records", {
                "data": {
                    "type": "usage-records",
                    "attributes": {
                        "quantity": quantity,
                        "action": "set",
                    },
                    "relationships": {
                        "subscription-item": {
                            "data": {"type": "subscription-items", "id": str(subscription_item_id)},
                        },
                    },
                },
            }, parser=read_update)

        return await self._request("PATCH", f"/subscription-items/{subscription_item_id}", {
            "data": {
                "type": "subscription-items",
                "id": str(subscription_item_id),
                "attributes": {
                    "quantity": quantity,
                    "invoice_immediately": invoice_immediately,
                },
            },
        }, parser=read_update)

    async def update_variant(self, subscription_id: SubscriptionId, variant_id: VariantId) -> ProviderSubscription:
        return await self._request("PATCH", f"/subscriptions/{subscription_id}", {
            "data": {
                "type": "subscriptions",
                "id": str(subscription_id),
                "attributes": {"variant_id": variant_id.value},
            },
        }, parser=_subscription_body)

    async def create_checkout(
        self,
        variant_id: VariantId,
        quantity: int,
        email: str,
        name: str,
        custom_data: Dict[str, Any],
    ) -> CheckoutSession:
        if not self.store_id:
            raise ConfigurationError("Lemon Squeezy store id is not configured")

        result = await self._request("POST", "/checkouts", {
            "data": {
                "type": "checkouts",
                "attributes": {
                    "checkout_data": {
                        "email": email,
                        "name": name,
                        "custom": {key: str(value) for key, value in custom_data.items()},
                        "variant_quantities": [
                            {"variant_id": variant_id.value, "quantity": quantity},
                        ],
                    },
                    "test_mode": self.test_mode,
                },
                "relationships": {
                    "store": {"data": {"type": "stores", "id": str(self.store_id)}},
                    "variant": {"data": {"type": "variants", "id": str(variant_id)}},
                },
            },
        })
        data = result.get("data") or {}
        checkout_url = (data.get("attributes") or {}).get("url")
        if not checkout_url:
            raise ProviderError("Checkout created without a URL", provider_detail=str(data.get("id")))
        return CheckoutSession(checkout_id=str(data.get("id")), checkout_url=checkout_url)


def _error_detail(result: Dict[str, Any]) -> Optional[str]:
    errors = result.get("errors") if isinstance(result, dict) else None
    if errors and isinstance(errors, list):
        first = errors[0] or {}
        return first.get("detail") or first.get("title")
    return None


def _subscription_body(result: Dict[str, Any]) -> ProviderSubscription:
    return parse_subscription(result.get("data") or {})


def parse_subscription(data: Dict[str, Any]) -> ProviderSubscription:
    """Map a JSON:API subscription resource onto ProviderSubscription"""
    attributes = data.get("attributes") or {}
    item = attributes.get("first_subscription_item") or {}
    urls = attributes.get("urls") or {}

    return ProviderSubscription(
        subscription_id=SubscriptionId(data.get("id")),
        status=attributes.get("status", ""),
        quantity=int(item.get("quantity") or 0),
        product_id=ProductId.parse(attributes.get("product_id")),
        variant_id=VariantId.parse(attributes.get("variant_id")),
        subscription_item_id=SubscriptionItemId.parse(item.get("id")),
        renews_at=parse_timestamp(attributes.get("renews_at")),
        ends_at=parse_timestamp(attributes.get("ends_at")),
        trial_ends_at=parse_timestamp(attributes.get("trial_ends_at")),
        updated_at=parse_timestamp(attributes.get("updated_at")),
        product_name=attributes.get("product_name"),
        variant_name=attributes.get("variant_name"),
        customer_portal_url=urls.get("customer_portal"),
        card_brand=attributes.get("card_brand"),
        card_last_four=attributes.get("card_last_four"),
        test_mode=bool(attributes.get("test_mode", False)),
        raw=data,
    )
