"""Pydantic models for API request/response schemas."""

from datetime import date
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal


# Entity models
class EntityListResponse(BaseModel):
    """Response model for listing one collection."""
    items: List[Dict[str, Any]]
    count: int


class DeleteResponse(BaseModel):
    success: bool
    id: str


# Cycle models
class GenerateQuartersRequest(BaseModel):
    """Create the four quarters of a financial year."""
    fy_start: Optional[date] = Field(None, description="Defaults to the configured financial year start")
    replace_existing: bool = False


class GenerateIterationsRequest(BaseModel):
    iteration_length: Optional[Literal["fortnightly", "monthly", "6-weekly"]] = Field(
        None, description="Defaults to the configured iteration length"
    )
    replace_existing: bool = False


class GeneratedCyclesResponse(BaseModel):
    created: List[Dict[str, Any]]
    removed: int = 0


# Import models
class CSVImportRequest(BaseModel):
    """CSV upload as JSON; a raw text/csv body is accepted too."""
    content: str
    dry_run: bool = False


class ImportResponse(BaseModel):
    kind: str
    dry_run: bool
    imported: Dict[str, int]
    errors: List[str]
    warnings: List[str]


# Scenario models
class ScenarioUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ScenarioListResponse(BaseModel):
    scenarios: List[Dict[str, Any]]
    count: int


class CleanupResponse(BaseModel):
    removed: int


# Health check models
class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = Field(..., description="'healthy', 'degraded', or 'unhealthy'")
    components: Dict[str, Dict[str, Any]]
    timestamp: str


# Error models
class ErrorResponse(BaseModel):
    """Response model for errors."""
    error: str
    detail: Optional[str] = None
