"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class RunResponse(BaseModel):
    """Response returned after a run is accepted."""

    run_id: str = Field(..., description="Identifier for the pipeline run")
    status: str = Field(default="running", description="Initial run status")


class RunStatusResponse(BaseModel):
    """Represents the current state of a run."""

    run_id: str
    status: str = Field(..., description="running | succeeded | failed | cancelled")
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    result_url: Optional[str] = None
    error: Optional[str] = None
    logs: List[str] = Field(default_factory=list)
