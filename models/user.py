from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime
from enum import Enum

class UserRole(str, Enum):
    ADMIN = "admin"
    INTERNAL = "internal"
    FREELANCER = "freelancer"

class SessionUser(BaseModel):
    """Authenticated staff member for the current request"""
    id: str
    email: Optional[EmailStr] = None
    role: UserRole = UserRole.INTERNAL
    access_token: str
    issued_at: Optional[datetime] = None
    expires_at: datetime

class InviteUserRequest(BaseModel):
    email: EmailStr
    name: str
    role: UserRole = UserRole.FREELANCER
