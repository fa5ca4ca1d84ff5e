from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Identity(BaseModel):
    id: str
    username: str
    email: str


class UserRecord(Identity):
    password_hash: str
    created_at: datetime

    def identity(self) -> Identity:
        return Identity(id=self.id, username=self.username, email=self.email)


class SignupRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    confirmPassword: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TokenResponse(BaseModel):
    success: bool = True
    token: str
    user: Identity


class UserResponse(BaseModel):
    user: Identity
