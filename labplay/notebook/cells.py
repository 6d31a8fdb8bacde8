"""
CellStore: the ordered list of notebook cells.

Single writer for cell state. Every mutation goes through a method that takes
the store lock and swaps in an updated Cell copy, so concurrent completions
for different cells cannot clobber each other. The store also owns the
execution counter shared by manual runs, pipeline cells and predictions.
"""

import threading
from typing import Any, List, Optional

from labplay.schemas.notebook_schema import Cell, CellOutput, CellStatus


def as_text(value: Any) -> str:
    """Render a reply field as text; None becomes the empty string."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class CellStore:
    """Ordered cells; always holds at least one."""

    def __init__(self):
        self._lock = threading.RLock()
        self._cells: List[Cell] = [Cell()]
        self._execution_count = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cells)

    def snapshot(self) -> List[Cell]:
        with self._lock:
            return list(self._cells)

    def get(self, cell_id: str) -> Optional[Cell]:
        with self._lock:
            i = self.index_of(cell_id)
            return self._cells[i] if i >= 0 else None

    def index_of(self, cell_id: str) -> int:
        with self._lock:
            for i, c in enumerate(self._cells):
                if c.id == cell_id:
                    return i
            return -1

    def running_cell(self) -> Optional[Cell]:
        with self._lock:
            return next((c for c in self._cells if c.is_running), None)

    @property
    def execution_count(self) -> int:
        with self._lock:
            return self._execution_count

    def next_execution_index(self) -> int:
        with self._lock:
            self._execution_count += 1
            return self._execution_count

    def _replace(self, cell_id: str, **update) -> Optional[Cell]:
        with self._lock:
            i = self.index_of(cell_id)
            if i < 0:
                return None
            cell = self._cells[i].model_copy(update=update)
            self._cells[i] = cell
            return cell

    # Editing

    def set_code(self, cell_id: str, code: str) -> Optional[Cell]:
        return self._replace(cell_id, code=code)

    def toggle_output(self, cell_id: str) -> Optional[Cell]:
        with self._lock:
            cell = self.get(cell_id)
            if cell is None:
                return None
            return self._replace(cell_id, output_open=not cell.output_open)

    def insert_after(self, cell_id: Optional[str] = None) -> Cell:
        """Insert an empty cell after cell_id (or at the end when None/unknown)."""
        cell = Cell()
        with self._lock:
            i = self.index_of(cell_id) if cell_id else -1
            if i < 0:
                self._cells.append(cell)
            else:
                self._cells.insert(i + 1, cell)
        return cell

    def move_up(self, cell_id: str) -> bool:
        with self._lock:
            i = self.index_of(cell_id)
            if i <= 0:
                return False
            self._cells[i - 1], self._cells[i] = self._cells[i], self._cells[i - 1]
            return True

    def move_down(self, cell_id: str) -> bool:
        with self._lock:
            i = self.index_of(cell_id)
            if i < 0 or i == len(self._cells) - 1:
                return False
            self._cells[i], self._cells[i + 1] = self._cells[i + 1], self._cells[i]
            return True

    def delete(self, cell_id: str) -> bool:
        """Remove a cell. Deleting the last remaining cell is a no-op."""
        with self._lock:
            if len(self._cells) == 1:
                return False
            i = self.index_of(cell_id)
            if i < 0:
                return False
            del self._cells[i]
            return True

    # Execution lifecycle

    def mark_running(self, cell_id: str) -> Optional[Cell]:
        """
        Move a cell to RUNNING, clear its output and give it the next execution
        index. Returns None (and changes nothing) if the cell is unknown or any
        cell is already running.
        """
        with self._lock:
            cell = self.get(cell_id)
            if cell is None or self.running_cell() is not None:
                return None
            return self._replace(
                cell_id,
                status=CellStatus.RUNNING,
                output=None,
                execution_index=self.next_execution_index(),
            )

    def complete(self, cell_id: str, output: CellOutput, duration_ms: int) -> Optional[Cell]:
        status = CellStatus.ERROR if output.error else CellStatus.DONE
        return self._replace(cell_id, status=status, output=output, duration_ms=duration_ms, output_open=True)

    def fail(self, cell_id: str, message: str, duration_ms: int = 0) -> Optional[Cell]:
        return self._replace(
            cell_id,
            status=CellStatus.ERROR,
            output=CellOutput(stdout="", error=message, charts=[]),
            duration_ms=duration_ms,
            output_open=True,
        )

    def append_resolved(
        self,
        code: Any,
        output: Any = "",
        error: Any = None,
        charts: Optional[List[Any]] = None,
    ) -> Cell:
        """
        Append a cell that already ran elsewhere (pipeline, prediction, chat).
        Non-string values are rendered with str(); non-string charts are dropped.
        """
        error = as_text(error) or None
        with self._lock:
            cell = Cell(
                code=as_text(code),
                status=CellStatus.ERROR if error else CellStatus.DONE,
                output=CellOutput(
                    stdout=as_text(output),
                    error=error,
                    charts=[c for c in charts if isinstance(c, str)] if isinstance(charts, list) else [],
                ),
                execution_index=self.next_execution_index(),
                duration_ms=0,
            )
            self._cells.append(cell)
            return cell

    def reset(self) -> None:
        with self._lock:
            self._cells = [Cell()]
            self._execution_count = 0
