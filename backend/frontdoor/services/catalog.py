"""
Product catalog and checkout.

Lists a tenant's configured billing products with their configured prices,
and opens hosted checkout sessions for a logged-in user.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from frontdoor.auth.principal import Principal
from frontdoor.errors import BadRequestError, UpstreamFailureError
from frontdoor.integrations.billing.client import BillingAPIError
from frontdoor.integrations.factory import ProviderClients
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)

CHECKOUT_MODES = {
    "s": "subscription",
    "p": "payment",
}


@dataclass
class ProductPrice:
    id: str
    product_id: str
    is_subscription: bool
    recurring_interval: str
    recurring_interval_count: int
    price: Optional[int]
    price_decimal: Optional[float]
    price_str: str
    currency: str
    description: str


@dataclass
class ProductSummary:
    id: str
    name: str
    description: str
    image_url: str
    prices: List[ProductPrice] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


def format_price(unit_amount_decimal: Optional[float]) -> str:
    """Minor units to a two-decimal string (1999 -> "19.99")."""
    if unit_amount_decimal is None:
        return ""
    return f"{unit_amount_decimal / 100.0:.2f}"


class CatalogService:
    """Catalog listing and checkout session creation per tenant."""

    def __init__(self, clients: ProviderClients):
        self._clients = clients

    def list_products(self, tenant: TenantApp) -> List[ProductSummary]:
        """
        Fetch every configured, active product and its valid prices.

        Inactive prices, prices belonging to another product and prices that
        fail to load are skipped. A product that fails to load fails the
        whole listing.

        Raises:
            UpstreamFailureError: If a product lookup fails
        """
        billing = self._clients.billing(tenant)
        products: List[ProductSummary] = []

        for configured in tenant.billing.products:
            try:
                product = billing.get_product(configured.product_id)
            except BillingAPIError as e:
                logger.error("Failed to load billing product", extra={
                    "tenant_id": tenant.id,
                    "product_id": configured.product_id,
                    "error": str(e),
                })
                raise UpstreamFailureError(f"failed to load product {configured.product_id}")
            if not product.active:
                continue

            prices: List[ProductPrice] = []
            for price_id in configured.price_ids:
                try:
                    price = billing.get_price(price_id)
                except BillingAPIError as e:
                    logger.warning("Failed to load billing price, skipping", extra={
                        "tenant_id": tenant.id,
                        "product_id": configured.product_id,
                        "price_id": price_id,
                        "error": str(e),
                    })
                    continue
                if not price.active:
                    continue
                if price.product_id != configured.product_id:
                    logger.warning("Price belongs to another product, skipping", extra={
                        "tenant_id": tenant.id,
                        "price_id": price_id,
                        "product_id": configured.product_id,
                        "price_product_id": price.product_id,
                    })
                    continue
                prices.append(ProductPrice(
                    id=price.id,
                    product_id=configured.product_id,
                    is_subscription=bool(price.recurring_interval),
                    recurring_interval=price.recurring_interval,
                    recurring_interval_count=price.recurring_interval_count,
                    price=price.unit_amount,
                    price_decimal=price.unit_amount_decimal,
                    price_str=format_price(price.unit_amount_decimal),
                    currency=price.currency,
                    description=price.nickname,
                ))

            products.append(ProductSummary(
                id=configured.product_id,
                name=product.name,
                description=product.description,
                image_url=product.images[0] if product.images else "",
                prices=prices,
            ))

        return products

    def create_checkout_session(
        self,
        tenant: TenantApp,
        principal: Principal,
        price_ids: List[str],
        mode: str,
    ) -> str:
        """
        Open a checkout session for the requested prices.

        mode is "s" (subscription) or "p" (one-time payment). With no price
        ids every configured price is offered. Only prices listed by the
        catalog and matching the mode become line items.

        Raises:
            BadRequestError: Unknown mode, or no requested price qualifies
            UpstreamFailureError: If the billing provider fails
        """
        checkout_mode = CHECKOUT_MODES.get(mode)
        if checkout_mode is None:
            raise BadRequestError(f"invalid checkout mode {mode!r}", body="invalid m value")
        if not tenant.billing.success_url or not tenant.billing.cancel_url:
            logger.error("Checkout redirect URLs not configured", extra={"tenant_id": tenant.id})
            raise UpstreamFailureError(f"checkout not configured for tenant {tenant.id}")

        requested = [p for p in price_ids if p] or tenant.billing.price_ids()
        available = {
            price.id: price
            for product in self.list_products(tenant)
            for price in product.prices
        }
        line_items = []
        for price_id in requested:
            price = available.get(price_id)
            if price is None or price_id in line_items:
                continue
            if price.is_subscription != (mode == "s"):
                continue
            line_items.append(price_id)

        if not line_items:
            raise BadRequestError("no requested price matches the checkout mode", body="invalid ids value")

        try:
            return self._clients.billing(tenant).create_checkout_session(
                price_ids=line_items,
                mode=checkout_mode,
                success_url=tenant.billing.success_url,
                cancel_url=tenant.billing.cancel_url,
                customer_email=principal.email or None,
                customer_id=principal.billing_customer_id or None,
            )
        except BillingAPIError as e:
            logger.error("Failed to create checkout session", extra={
                "tenant_id": tenant.id,
                "user_id": principal.user_id,
                "error": str(e),
            })
            raise UpstreamFailureError(f"checkout session failed for user {principal.user_id}")
