# models/user.py
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr
import enum

class RoleEnum(str, enum.Enum):
    admin = "admin"
    instructor = "instructor"
    student = "student"

class User(BaseModel):
    id: Optional[str] = None
    full_name: str
    username: str
    email: EmailStr
    password_hash: str
    role: RoleEnum = RoleEnum.student
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    @property
    def is_staff(self) -> bool:
        return self.role in (RoleEnum.admin, RoleEnum.instructor)
