"""
Local dataset preview.

Reads the head of a CSV/Excel file before it is uploaded so unreadable files
are rejected early and the target column can be picked from real column names.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

import pandas as pd

EXCEL_SUFFIXES = (".xls", ".xlsx")


class DatasetError(Exception):
    """The file is missing or pandas could not parse it."""


@dataclass
class DatasetPreview:
    filename: str
    columns: List[str] = field(default_factory=list)
    n_rows_sampled: int = 0
    dtypes: Dict[str, str] = field(default_factory=dict)

    def has_column(self, name: str) -> bool:
        return name in self.columns


def preview_dataset(path: str, nrows: int = 200) -> DatasetPreview:
    p = Path(path).expanduser()
    if not p.exists():
        raise DatasetError(f"File not found: {p}")
    try:
        if p.suffix.lower() in EXCEL_SUFFIXES:
            df = pd.read_excel(p, nrows=nrows)
        else:
            df = pd.read_csv(p, nrows=nrows)
    except Exception as e:
        raise DatasetError(f"Could not read {p.name}: {e}") from e
    return DatasetPreview(
        filename=p.name,
        columns=[str(c) for c in df.columns],
        n_rows_sampled=len(df),
        dtypes={str(c): str(t) for c, t in df.dtypes.items()},
    )
