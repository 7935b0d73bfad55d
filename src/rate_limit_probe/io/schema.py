"""
Schema definitions for probe runs.

This module defines the value types passed between the request source, the
dispatcher, the HTTP transport and the report writer.
"""

from enum import Enum
from typing import Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

RATE_LIMIT_STATUS = 429


class HttpMethod(str, Enum):
    """HTTP methods the probe can issue."""

    GET = "GET"
    POST = "POST"


class StopReason(str, Enum):
    """Why a run ended normally."""

    RATE_LIMITED = "rate_limited"
    TIME_EXPIRED = "time_expired"
    COUNT_EXHAUSTED = "count_exhausted"


class RequestDescriptor(BaseModel):
    """The request every attempt in a run repeats."""

    model_config = ConfigDict(frozen=True)

    method: HttpMethod = Field(default=HttpMethod.GET, description="HTTP method")
    url: str = Field(..., min_length=1, description="Target URL")

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"URL must be an absolute http(s) URL, got '{v}'")
        return v


class ResponseObservation(BaseModel):
    """Status and headers of one completed attempt."""

    model_config = ConfigDict(frozen=True)

    status_code: int = Field(..., ge=100, le=999)
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == RATE_LIMIT_STATUS


class RunResult(BaseModel):
    """Outcome of a run that ended with one of the normal stop reasons."""

    model_config = ConfigDict(frozen=True)

    stop_reason: StopReason
    elapsed: float = Field(..., ge=0, description="Seconds from run start to the stop decision")
    requests_completed: int = Field(..., ge=0)
    rate_limit_headers: Optional[Dict[str, str]] = Field(
        None, description="Headers of the response that triggered a rate-limit stop"
    )

    @property
    def elapsed_ms(self) -> int:
        return int(self.elapsed * 1000)

    def to_summary(self) -> Dict[str, object]:
        """Flatten into a JSON-friendly dict for run summaries."""
        return {
            "stop_reason": self.stop_reason.value,
            "elapsed_ms": self.elapsed_ms,
            "requests_completed": self.requests_completed,
            "rate_limit_headers": self.rate_limit_headers,
        }
