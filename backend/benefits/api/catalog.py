from fastapi import APIRouter

from benefits.schemas.catalog import CatalogResponse
from benefits.services import catalog

catalog_router = APIRouter(prefix="/catalog", tags=["catalog"])


@catalog_router.get("", response_model=CatalogResponse)
async def list_catalog() -> CatalogResponse:
    """Every benefit type with its cap, period and amount rule."""
    policies = catalog.list_policies()
    return CatalogResponse(items=policies, total=len(policies))
