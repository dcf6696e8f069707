from fastapi import APIRouter

from saleledger.app.api.v1.endpoints import cash, integration_events, invoices, pos

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(pos.router, prefix="/pos", tags=["pos"])
api_router.include_router(cash.router, prefix="/cash", tags=["cash"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
api_router.include_router(
    integration_events.router, prefix="/integration-events", tags=["integration-events"]
)
