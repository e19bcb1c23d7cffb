"""
Billing provider client (Stripe-compatible REST API).

Handles:
- Customer lookup with expanded subscriptions
- Customer creation (provisioning at first login)
- Product and price lookup for the catalog
- Checkout session creation

Every call carries an explicit timeout.

SECURITY: the secret key is per tenant and never logged.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.stripe.com/v1"
DEFAULT_TIMEOUT_SECONDS = 10.0

SUBSCRIPTION_STATUS_ACTIVE = "active"


class BillingAPIError(Exception):
    """Error communicating with the billing provider."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


@dataclass
class BillingSubscription:
    """A customer subscription and the products it covers."""

    id: str
    status: str
    product_ids: List[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == SUBSCRIPTION_STATUS_ACTIVE


@dataclass
class BillingCustomer:
    """A billing customer as returned by the provider."""

    id: str
    email: Optional[str] = None
    deleted: bool = False
    subscriptions: List[BillingSubscription] = field(default_factory=list)

    def has_active_subscription(self, product_id: str) -> bool:
        return any(
            sub.is_active and product_id in sub.product_ids
            for sub in self.subscriptions
        )


@dataclass
class BillingProductInfo:
    id: str
    name: str
    description: str = ""
    active: bool = True
    images: List[str] = field(default_factory=list)


@dataclass
class BillingPrice:
    id: str
    product_id: Optional[str]
    active: bool
    unit_amount: Optional[int]
    unit_amount_decimal: Optional[float]
    currency: str
    nickname: str = ""
    recurring_interval: str = ""
    recurring_interval_count: int = 0


def _product_id(value: Any) -> Optional[str]:
    """Product references are either an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _flatten_params(params: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Encode nested dicts/lists with bracket notation (a[b][0]=c)."""
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(_flatten_params(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(_flatten_params(item, item_name))
                else:
                    pairs.append((item_name, str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


def _parse_subscription(data: Dict[str, Any]) -> BillingSubscription:
    product_ids: List[str] = []
    plan_product = _product_id((data.get("plan") or {}).get("product"))
    if plan_product:
        product_ids.append(plan_product)
    for item in (data.get("items") or {}).get("data") or []:
        for ref in ((item.get("price") or {}).get("product"), (item.get("plan") or {}).get("product")):
            pid = _product_id(ref)
            if pid and pid not in product_ids:
                product_ids.append(pid)
    return BillingSubscription(
        id=data.get("id", ""),
        status=data.get("status", ""),
        product_ids=product_ids,
    )


class BillingClient:
    """
    Client for one tenant's billing account.

    Usage:
        client = BillingClient(tenant.billing.secret_key)
        customer = client.get_customer("cus_123")
        customer.has_active_subscription("prod_X")
    """

    def __init__(
        self,
        secret_key: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not secret_key:
            raise ValueError("secret_key is required")
        self.api_base = api_base.rstrip("/")
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Authorization": f"Bearer {secret_key}"},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[List[Tuple[str, str]]] = None,
        data: Optional[List[Tuple[str, str]]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.api_base}{path}"
        try:
            if data is not None:
                response = self._client.request(
                    method,
                    url,
                    params=params,
                    content=urlencode(data),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            else:
                response = self._client.request(method, url, params=params)
        except httpx.TimeoutException as e:
            logger.error("Billing API timeout", extra={"path": path, "error": str(e)})
            raise BillingAPIError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Billing API request error", extra={"path": path, "error": str(e)})
            raise BillingAPIError(f"Request error: {e}")

        if response.status_code >= 400:
            error_code = None
            try:
                error_code = (response.json().get("error") or {}).get("code")
            except ValueError:
                pass
            logger.error("Billing API error", extra={
                "path": path,
                "status_code": response.status_code,
                "error_code": error_code,
            })
            raise BillingAPIError(
                f"Billing API error: {response.status_code}",
                status_code=response.status_code,
                code=error_code,
            )

        try:
            return response.json()
        except ValueError:
            raise BillingAPIError("Billing API returned a non-JSON body", status_code=response.status_code)

    def get_customer(self, customer_id: str) -> BillingCustomer:
        """
        Get a customer with its subscriptions expanded.

        Raises:
            BillingAPIError: If the API call fails
        """
        if not customer_id:
            raise BillingAPIError("customer_id is required")

        data = self._request(
            "GET",
            f"/customers/{customer_id}",
            params=[("expand[]", "subscriptions")],
        )
        subscriptions = [
            _parse_subscription(sub)
            for sub in (data.get("subscriptions") or {}).get("data") or []
        ]
        return BillingCustomer(
            id=data.get("id", ""),
            email=data.get("email"),
            deleted=bool(data.get("deleted", False)),
            subscriptions=subscriptions,
        )

    def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create a customer and return its id."""
        payload = {
            "email": email or None,
            "name": name or None,
            "phone": phone or None,
            "metadata": metadata or None,
        }
        data = self._request("POST", "/customers", data=_flatten_params(payload))
        customer_id = data.get("id")
        if not customer_id:
            raise BillingAPIError("Customer creation response missing id")
        logger.info("Created billing customer", extra={"customer_id": customer_id})
        return customer_id

    def get_product(self, product_id: str) -> BillingProductInfo:
        data = self._request("GET", f"/products/{product_id}")
        return BillingProductInfo(
            id=data.get("id", product_id),
            name=data.get("name", ""),
            description=data.get("description") or "",
            active=bool(data.get("active", False)),
            images=list(data.get("images") or []),
        )

    def get_price(self, price_id: str) -> BillingPrice:
        data = self._request("GET", f"/prices/{price_id}")
        recurring = data.get("recurring") or {}
        decimal_raw = data.get("unit_amount_decimal")
        return BillingPrice(
            id=data.get("id", price_id),
            product_id=_product_id(data.get("product")),
            active=bool(data.get("active", False)),
            unit_amount=data.get("unit_amount"),
            unit_amount_decimal=float(decimal_raw) if decimal_raw is not None else None,
            currency=data.get("currency", ""),
            nickname=data.get("nickname") or "",
            recurring_interval=recurring.get("interval") or "",
            recurring_interval_count=int(recurring.get("interval_count") or 0),
        )

    def create_checkout_session(
        self,
        price_ids: List[str],
        mode: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> str:
        """Create a hosted checkout session and return its id."""
        payload = {
            "mode": mode,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1} for price_id in price_ids],
        }
        if customer_id:
            payload["customer"] = customer_id
        elif customer_email:
            payload["customer_email"] = customer_email

        data = self._request("POST", "/checkout/sessions", data=_flatten_params(payload))
        session_id = data.get("id")
        if not session_id:
            raise BillingAPIError("Checkout session response missing id")
        logger.info("Created checkout session", extra={
            "session_id": session_id,
            "mode": mode,
            "line_items": len(price_ids),
        })
        return session_id
