"""
Product catalog and checkout routes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from frontdoor.api.dependencies import get_origin_tenant, get_principal, get_services, json_response
from frontdoor.auth.principal import Principal
from frontdoor.platform.container import Services
from frontdoor.tenants.models import TenantApp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/products")
def list_products(
    request: Request,
    tenant: TenantApp = Depends(get_origin_tenant),
    services: Services = Depends(get_services),
):
    products = services.catalog.list_products(tenant)
    return json_response(request, [product.to_dict() for product in products])


@router.post("/create-checkout-session")
def create_checkout_session(
    request: Request,
    ids: Optional[str] = Query(None, description="Comma-separated price ids"),
    m: Optional[str] = Query(None, description="s for subscription, p for one-time payment"),
    tenant: TenantApp = Depends(get_origin_tenant),
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    price_ids = [price_id.strip() for price_id in (ids or "").split(",") if price_id.strip()]
    session_id = services.catalog.create_checkout_session(tenant, principal, price_ids, m or "")
    return json_response(request, {"id": session_id})
