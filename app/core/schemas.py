from typing import List, Optional

from pydantic import BaseModel, Field


class OperationResult(BaseModel):
    """Outcome of a ledger mutation. Callers branch on ``success``."""

    success: bool
    id: Optional[str] = None
    error: Optional[str] = None
    count: Optional[int] = None


class BulkCreateResult(OperationResult):
    ids: List[str] = Field(default_factory=list)
