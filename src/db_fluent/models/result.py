"""Raw execution result model."""

from typing import Optional

from pydantic import BaseModel, Field


class ExecResult(BaseModel):
    """Outcome of a raw SQL statement."""

    rows_affected: int = Field(default=0, description="Rows changed by the statement")
    last_insert_id: Optional[int] = Field(
        None, description="Generated key of the last inserted row, if reported"
    )
