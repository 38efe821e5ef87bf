# api/health.py

from fastapi import APIRouter, Request

health_router = APIRouter()


@health_router.get("/health")
async def health_check(request: Request):
    registry = getattr(request.app.state, "registry", None)
    return {
        "status": "healthy",
        "message": "Todo AI API is running",
        "tools": len(registry) if registry is not None else 0,
    }
