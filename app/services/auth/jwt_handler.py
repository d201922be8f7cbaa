import jwt
from typing import Optional
from app.config import settings
from app.schemas.auth_schema import Principal


def decode_access_token(token: str):
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_principal(token: str) -> Optional[Principal]:
    """Build the calling principal from JWT claims (sub/user_id, role, wholesaler_id)"""
    payload = decode_access_token(token)
    if not payload:
        return None
    principal_id = payload.get("sub") or payload.get("user_id")
    role = payload.get("role")
    if not principal_id or not role:
        return None
    return Principal(
        principal_id=str(principal_id),
        role=str(role),
        linked_wholesaler_id=payload.get("wholesaler_id"),
    )
