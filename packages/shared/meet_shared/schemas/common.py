from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class AuthProvider(str, Enum):
    LOCAL = "local"
    GOOGLE = "google"
    GOOGLE_LINKED = "google_linked"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    details: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    error: ErrorBody


class MessageResponse(BaseModel):
    success: bool = True
    message: str
