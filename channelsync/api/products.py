"""
Product catalog endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from typing import Any, Dict, List, Optional

from channelsync.api.deps import get_orchestrator, http_error, parse_platform
from channelsync.errors import ChannelSyncError
from channelsync.schemas import money_string
from channelsync.services.sync_service import SyncOrchestrator
from channelsync.utils.helpers import paginate

router = APIRouter(prefix="/products", tags=["products"])

ALL_SOURCES = "all"


class VariantIn(BaseModel):
    price: str
    sku: Optional[str] = None
    inventory_quantity: Optional[int] = None
    compare_at_price: Optional[str] = None

    @field_validator("price", "compare_at_price", mode="before")
    @classmethod
    def keep_money_string(cls, v):
        # Money stays a decimal string end to end
        return None if v is None else money_string(v)


class ImageIn(BaseModel):
    src: str


class ProductCreate(BaseModel):
    title: str
    body_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: Optional[str] = None
    status: Optional[str] = None
    variants: List[VariantIn] = []
    images: List[ImageIn] = []


class LinkRequest(BaseModel):
    marketplace_id: Optional[str] = None


class ProductUpdate(BaseModel):
    title: Optional[str] = None
    body_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: Optional[str] = None
    status: Optional[str] = None
    variants: Optional[List[VariantIn]] = None
    images: Optional[List[ImageIn]] = None


def _payload(body: BaseModel) -> Dict[str, Any]:
    return body.model_dump(exclude_none=True)


@router.get("")
async def list_products(
    source: str = Query("website", description="Platform id (website, shopify, amazon, ...) or \"all\" for the reconciled list"),
    page: int = Query(1, ge=1),
    per_page: int = Query(25, ge=1, le=250),
    refresh: bool = Query(False, description="Bypass the cache"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Products from one platform, paginated. Cached results may be stale."""
    try:
        if source.strip().lower() == ALL_SOURCES:
            result = await orchestrator.get_merged_products(refresh=refresh)
        else:
            result = await orchestrator.get_products(parse_platform(source), refresh=refresh)
    except ChannelSyncError as e:
        raise http_error(e)

    page_data = paginate(result["products"], page=page, per_page=per_page)
    return {
        "products": page_data["items"],
        "logs": result["logs"],
        "page": page_data["page"],
        "per_page": page_data["per_page"],
        "total": page_data["total"],
        "total_pages": page_data["total_pages"],
        "is_stale": result["is_stale"],
    }


@router.get("/{product_id}")
async def get_product(product_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        product = await orchestrator.get_product(product_id)
    except ChannelSyncError as e:
        raise http_error(e)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product with ID {product_id} not found")
    return {"success": True, "product": product.to_dict()}


@router.post("")
async def create_product(body: ProductCreate, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """
    Create a product on the storefront and sync it into the website datastore.

    Example: POST /products {"title": "Basin Mixer", "variants": [{"price": "19.99"}]}
    """
    try:
        result = await orchestrator.create_product(_payload(body))
    except ChannelSyncError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    body: ProductUpdate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Update a product on the storefront, then re-sync it into the datastore"""
    try:
        result = await orchestrator.update_product(product_id, _payload(body))
    except ChannelSyncError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.post("/{product_id:path}/platforms/{platform}")
async def link_product(
    product_id: str,
    platform: str,
    body: Optional[LinkRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    List a website product on another marketplace and record its id there.

    Send {"marketplace_id": "..."} when the listing already exists to only
    record the link.
    """
    target = parse_platform(platform)
    marketplace_id = body.marketplace_id if body else None
    try:
        result = await orchestrator.link_product(product_id, target, marketplace_id=marketplace_id)
    except ChannelSyncError as e:
        raise http_error(e)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Product with ID {product_id} not found in website database")
    return {"success": True, **result}
