from fastapi import APIRouter

from benefits.api.balances import employee_budget_router, rollover_router
from benefits.api.catalog import catalog_router
from benefits.api.requests import requests_router

api_router = APIRouter()
api_router.include_router(catalog_router)
api_router.include_router(requests_router)
api_router.include_router(employee_budget_router)
api_router.include_router(rollover_router)
