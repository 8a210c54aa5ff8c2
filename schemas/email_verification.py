from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class SendCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    full_name: Optional[str] = Field(default=None, alias="fullName")


class VerifyCodeRequest(BaseModel):
    email: str
    code: str


class SendCodeResponse(BaseModel):
    success: bool = True
    message: str
    expires_at: Optional[datetime] = None


class VerifyCodeResponse(BaseModel):
    success: bool = True
    email: str
    purpose: str
    verified_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    error: str
    kind: Optional[str] = None
    details: Optional[str] = None  # Only populated when APP_ENV=development
