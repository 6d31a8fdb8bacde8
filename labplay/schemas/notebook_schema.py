"""
Notebook cell schema.

Cells are immutable snapshots; CellStore replaces an entry with an updated copy
on every mutation so readers never observe a half-applied change.
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CellStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class CellOutput(BaseModel):
    """What the remote interpreter produced for one execution."""
    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    error: Optional[str] = None
    charts: List[str] = Field(default_factory=list)  # base64 PNG payloads


class Cell(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    code: str = ""
    status: CellStatus = CellStatus.IDLE
    output: Optional[CellOutput] = None
    execution_index: Optional[int] = None
    output_open: bool = True
    duration_ms: Optional[int] = None  # wall clock, display only

    @property
    def is_running(self) -> bool:
        return self.status == CellStatus.RUNNING
