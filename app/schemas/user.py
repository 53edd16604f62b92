from typing import Literal, Optional

from pydantic import BaseModel, EmailStr


class UserBase(BaseModel):
    name: str
    email: EmailStr

    model_config = {"from_attributes": True}


class UserCreate(UserBase):
    password: str
    role: Literal["requester", "provider", "admin"] = "requester"
    signup_code: Optional[str] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserOut(UserBase):
    id: int
    role: str
