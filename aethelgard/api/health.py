"""Health check."""

from fastapi import APIRouter, Depends

from .deps import Services, services

router = APIRouter()


@router.get("/health")
async def health(svc: Services = Depends(services)) -> dict:
    """Report "ok", or "unconfigured" with the missing settings."""
    if svc.missing:
        return {"status": "unconfigured", "missing": svc.missing}
    return {"status": "ok"}
