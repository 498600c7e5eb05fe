"""Portal entry points and liveness probe."""
from fastapi import APIRouter

router = APIRouter(tags=["home"])


@router.get("/")
async def root():
    return {
        "message": "CareLink is running",
        "portals": {
            "doctor": {"login": "/login", "dashboard": "/dashboard"},
            "patient": {"login": "/patient/login", "dashboard": "/patient/dashboard"},
        },
    }


@router.get("/health")
async def health_check():
    return {"status": "ok"}
