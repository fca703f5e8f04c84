"""
Report envelope models.

The analytics facade returns computed reports as plain JSON-compatible dicts;
`ReportResponse` wraps them for the generic dispatcher so a failed report is
distinguishable from one whose answer is legitimately zero or empty.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReportError(BaseModel):
    """
    Error block attached to a failed report.

    Attributes:
        code: Stable machine-readable error code (e.g. "missing_tenant")
        message: Human-readable description
        context: Diagnostic context such as report name, tenant and window
    """

    code: str = Field(description="Stable machine-readable error code")
    message: str = Field(description="Human-readable error description")
    context: dict[str, Any] = Field(default_factory=dict, description="Diagnostic context")


class ReportResponse(BaseModel):
    """
    Outcome of one report invocation.

    Attributes:
        success: False only when the report could not be computed
        report: Report type that was requested
        data: Report payload; None on failure
        error: Error details; None on success
        generated_at: When the response envelope was produced
    """

    model_config = ConfigDict(use_enum_values=True)

    success: bool = Field(description="Whether the report was computed")
    report: str = Field(description="Requested report type")
    data: Optional[Any] = Field(default=None, description="Report payload")
    error: Optional[ReportError] = Field(default=None, description="Failure details")
    generated_at: datetime = Field(default_factory=datetime.now, description="Envelope timestamp")
