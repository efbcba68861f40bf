from pydantic import BaseModel
from typing import Optional


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    lang: Optional[str] = None


class UserResponse(BaseModel):
    id_credentials: Optional[str] = None
    user: str
    full_name: Optional[str] = None
    lang: Optional[str] = None
    gender: Optional[str] = None
    role: Optional[str] = None
    list: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    user: UserResponse
