"""Result object handed from the core to the presentation layer."""

from pydantic import BaseModel, Field


class DemoResult(BaseModel):
    """Outcome of one demonstration run."""

    success: bool = Field(description="True if the demo ran to completion")
    message: str = Field(description="One-line description of the outcome")
    output: str | None = Field(default=None, description="Short human-readable summary")
    error: str | None = Field(default=None, description="Error message if the demo failed")
