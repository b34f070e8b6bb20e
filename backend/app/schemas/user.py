from pydantic import BaseModel, EmailStr, Field

from app.models.user import CustomerLevel


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str | None = Field(default=None, max_length=255)
    customer_level: CustomerLevel = CustomerLevel.NEW
