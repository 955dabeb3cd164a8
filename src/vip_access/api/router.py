from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..container import Services
from ..errors import CurrencyUnavailable
from ..models.api_models import HealthResponse, PlanResponse
from ..utils import utcnow

router = APIRouter(tags=["vip-access"])


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="service not ready"
        )
    return services


@router.get("/health", response_model=HealthResponse)
async def health(services: Services = Depends(get_services)) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        service="vip-access-bot",
        timestamp=utcnow(),
        features=[
            f"verification:{services.verification.strategy.name}",
            *(f"currency:{c.value}" for c in services.catalog.currencies()),
        ],
    )


@router.get("/plans", response_model=List[PlanResponse])
async def list_plans(services: Services = Depends(get_services)) -> List[PlanResponse]:
    return [
        PlanResponse(
            id=plan.id,
            label=plan.label,
            months=plan.months,
            prices={c.value: p for c, p in plan.prices.items()},
        )
        for plan in services.catalog.list_plans()
    ]


@router.get("/payments/{user_id}/qr.png")
async def payment_qr(user_id: int, services: Services = Depends(get_services)) -> Response:
    attempt = await services.payments.get_pending_payment(user_id)
    if attempt is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no pending payment")
    try:
        png = services.payments.payment_qr(attempt)
    except CurrencyUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return Response(content=png, media_type="image/png")
