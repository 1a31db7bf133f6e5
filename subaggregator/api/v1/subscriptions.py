"""
Subscription API endpoints
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from subaggregator.api.deps import Caller, get_caller, get_service
from subaggregator.application.subscriptions import SubscriptionService
from subaggregator.domain.subscription import SubscriptionEntry, SubscriptionRequest, SumFilterRequest


router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


# === Request/Response models ===

class SubscriptionBody(BaseModel):
    service_name: str = Field(min_length=1)
    price: int = Field(ge=0)  # minor currency units
    start_date: str  # DD-MM-YYYY
    counter_months: int = Field(gt=0)
    is_active: bool = True


class SumBody(BaseModel):
    start_date: str
    counter_months: int = Field(gt=0)
    service_name: Optional[str] = None


class SubscriptionResponse(BaseModel):
    id: Optional[int]
    service_name: str
    price: int
    username: str
    start_date: date
    counter_months: int
    next_payment_date: Optional[date]
    is_active: bool


class IdResponse(BaseModel):
    id: int


class RowsResponse(BaseModel):
    rows: int


class SumResponse(BaseModel):
    total: int


def _to_request(body: SubscriptionBody) -> SubscriptionRequest:
    return SubscriptionRequest(
        service_name=body.service_name,
        price=body.price,
        start_date=body.start_date,
        counter_months=body.counter_months,
        is_active=body.is_active,
    )


def _to_response(entry: SubscriptionEntry) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=entry.id,
        service_name=entry.service_name,
        price=entry.price,
        username=entry.username,
        start_date=entry.start_date,
        counter_months=entry.counter_months,
        next_payment_date=entry.next_payment_date,
        is_active=entry.is_active,
    )


# === Endpoints ===

@router.post("/", response_model=IdResponse, status_code=201)
def create_subscription(
    body: SubscriptionBody,
    caller: Caller = Depends(get_caller),
    service: SubscriptionService = Depends(get_service),
):
    """Создать подписку"""
    new_id = service.create(caller.username, _to_request(body), user_uid=caller.user_uid)
    return IdResponse(id=new_id)


@router.get("/", response_model=List[SubscriptionResponse])
def list_subscriptions(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    caller: Caller = Depends(get_caller),
    service: SubscriptionService = Depends(get_service),
):
    entries = service.list(caller.username, caller.role, limit, offset)
    return [_to_response(e) for e in entries]


@router.post("/sum", response_model=SumResponse)
def count_sum(
    body: SumBody,
    caller: Caller = Depends(get_caller),
    service: SubscriptionService = Depends(get_service),
):
    """Суммарная стоимость подписок за период"""
    total = service.count_sum_with_filter(
        caller.username,
        SumFilterRequest(
            start_date=body.start_date,
            counter_months=body.counter_months,
            service_name=body.service_name,
        ),
    )
    return SumResponse(total=total)


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
def read_subscription(
    subscription_id: int,
    caller: Caller = Depends(get_caller),
    service: SubscriptionService = Depends(get_service),
):
    return _to_response(service.read(subscription_id))


@router.put("/{subscription_id}", response_model=RowsResponse)
def update_subscription(
    subscription_id: int,
    body: SubscriptionBody,
    caller: Caller = Depends(get_caller),
    service: SubscriptionService = Depends(get_service),
):
    """Полная замена подписки (все поля обязательны)"""
    rows = service.update(subscription_id, caller.username, _to_request(body), user_uid=caller.user_uid)
    if not rows:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return RowsResponse(rows=rows)


@router.delete("/{subscription_id}", response_model=RowsResponse)
def remove_subscription(
    subscription_id: int,
    caller: Caller = Depends(get_caller),
    service: SubscriptionService = Depends(get_service),
):
    rows = service.remove(subscription_id)
    if not rows:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return RowsResponse(rows=rows)
