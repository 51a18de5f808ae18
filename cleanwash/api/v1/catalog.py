"""
Catalog API endpoints.

Lists the clothing items students can add to an order, with their unit
prices.
"""

from typing import Optional

from fastapi import APIRouter, Query, status

from cleanwash.api.deps import CurrentActor, OrderServiceDep
from cleanwash.schemas.orders import ClothingItemSummary

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get(
    "",
    response_model=list[ClothingItemSummary],
    status_code=status.HTTP_200_OK,
    summary="List catalog items",
)
async def list_catalog(
    actor: CurrentActor,
    service: OrderServiceDep,
    gender: Optional[str] = Query(None, max_length=20, description="Filter by gender"),
) -> list[ClothingItemSummary]:
    return await service.list_catalog(gender)
