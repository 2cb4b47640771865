from pydantic import BaseModel, EmailStr, Field

from app.models.user import UserRole, UserStatus


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    name: str | None = Field(default=None, max_length=255)


class UserAdminUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    role: UserRole | None = None
    status: UserStatus | None = None
