"""Pydantic schemas for API request/response models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CompileMode(str, Enum):
    """Compilation modes selectable per request."""

    RAW = "RAW"
    WHITESPACE = "WHITESPACE"
    SIMPLE = "SIMPLE"
    ADVANCED = "ADVANCED"


# ========== Response Schemas ==========


class EvictResponse(BaseModel):
    """Response model for session eviction."""

    entry_id: str = Field(..., description="Entry point identifier")
    evicted: int = Field(..., ge=0, description="Number of sessions removed")


# ========== Error Schemas ==========


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error class name")
    detail: Optional[str] = Field(None, description="Detailed error information")
    exit_code: Optional[int] = Field(None, description="Compiler exit code, if any")
