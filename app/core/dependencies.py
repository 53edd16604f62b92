from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.core.exceptions import AuthenticationFailed, Unauthorized
from app.core.jwt import decode_token
from app.models.enums import Role
from app.models.user import User
from app.services.state_machine import Actor
from app.utils.notifications import get_notifier as build_notifier
from app.utils.razorpay_client import RazorpayGateway

security = HTTPBearer()

_gateway = None


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_gateway():
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway()
    return _gateway


def get_notifier():
    return build_notifier()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    payload = decode_token(credentials.credentials)

    user = db.query(User).filter(User.email == payload["sub"]).first()
    if not user or user.role != payload["role"]:
        raise AuthenticationFailed("Account not found")

    return user


def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    return Actor(user.id, user.role)


def require_role(*roles: Role):
    allowed = {r.value for r in roles}

    def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise Unauthorized(f"{actor.role.capitalize()} accounts cannot perform this action")
        return actor

    return checker
