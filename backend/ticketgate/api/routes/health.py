from fastapi import APIRouter

from ticketgate.core.config import settings

router = APIRouter()

@router.get("")
@router.get("/")
def health():
    return {"status": "ok", "app": settings.app_name, "env": settings.env}
