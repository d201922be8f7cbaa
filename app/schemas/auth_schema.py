from pydantic import BaseModel
from typing import Optional
from enum import Enum


class UserRole(str, Enum):
    admin = "admin"
    wholesaler = "wholesaler"
    retailer = "retailer"


class Principal(BaseModel):
    """Authenticated caller as supplied by the identity provider"""
    principal_id: str
    role: str
    linked_wholesaler_id: Optional[str] = None
