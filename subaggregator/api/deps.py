"""
FastAPI dependencies (service instance, caller identity)
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from subaggregator.application.subscriptions import SubscriptionService


@dataclass
class Caller:
    username: str
    role: str
    user_uid: Optional[str] = None


def get_service(request: Request) -> SubscriptionService:
    """Service built once per app in create_app()"""
    return request.app.state.subscription_service


def get_caller(
    x_user_name: Optional[str] = Header(default=None),
    x_user_role: str = Header(default="user"),
    x_user_uid: Optional[str] = Header(default=None),
) -> Caller:
    """
    Caller identity, as forwarded by the authenticating gateway

    Raises:
        HTTPException(401): если заголовок X-User-Name не передан
    """
    if not x_user_name:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return Caller(username=x_user_name, role=x_user_role, user_uid=x_user_uid)
