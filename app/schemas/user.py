from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Literal

class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=2, max_length=100)
    password: str = Field(..., min_length=8, max_length=72)
    role: Literal["admin", "worker", "user"] = "user"
    image: Optional[str] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: int
    email: EmailStr
    is_active: bool
    name: str | None  # ← Nullable in response
    image: str | None = None
    role: str

    model_config = {"from_attributes": True}

class WorkerLoadResponse(BaseModel):
    id: int
    name: Optional[str]
    email: str
    image: Optional[str]
    task_count: int

class Token(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse
