from fastapi import APIRouter, Request
from pydantic import BaseModel

from turnstile.api.middleware import extract_ip

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    storage: str


class EchoResponse(BaseModel):
    message: str
    ip: str


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    return HealthResponse(
        status="ok",
        storage=getattr(request.app.state, "storage_backend", "none"),
    )


@router.get("/test", response_model=EchoResponse)
async def test_endpoint(request: Request):
    return EchoResponse(
        message="Request successful",
        ip=extract_ip(request),
    )
