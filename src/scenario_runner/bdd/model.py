"""
Scenario model consumed by the executor.

Features are produced by a parser (see ``scenario_runner.bdd.parser``) or built
directly in code; the executor never looks at feature text itself.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple


class DataTable:
    """Table argument attached to a step. The first row holds the headers."""

    def __init__(self, rows: Sequence[Sequence[Any]]):
        self._rows = [list(row) for row in rows]

    @classmethod
    def from_headers(cls, headers: Sequence[Any], rows: Sequence[Sequence[Any]]) -> "DataTable":
        return cls([list(headers)] + [list(row) for row in rows])

    @property
    def headers(self) -> List[Any]:
        return list(self._rows[0]) if self._rows else []

    def raw(self) -> List[List[Any]]:
        """All rows, headers included"""
        return [list(row) for row in self._rows]

    def rows(self) -> List[List[Any]]:
        """Data rows without the header row"""
        return [list(row) for row in self._rows[1:]]

    def hashes(self) -> List[Dict[Any, Any]]:
        """One dict per data row, keyed by header"""
        headers = self.headers
        return [dict(zip(headers, row)) for row in self._rows[1:]]

    def rows_hash(self) -> Dict[Any, Any]:
        """Two-column table as a key -> value mapping"""
        return {row[0]: row[1] for row in self._rows if len(row) >= 2}

    def map(self, func) -> "DataTable":
        return DataTable([[func(cell) for cell in row] for row in self._rows])

    def __len__(self) -> int:
        return max(len(self._rows) - 1, 0)

    def __eq__(self, other) -> bool:
        return isinstance(other, DataTable) and self._rows == other._rows

    def __repr__(self) -> str:
        return f"DataTable({self._rows!r})"


@dataclass
class Step:
    """A single step line"""
    keyword: str
    text: str
    data_table: Optional[DataTable] = None
    doc_string: Optional[str] = None

    @property
    def line(self) -> str:
        return f"{self.keyword} {self.text}".strip()


@dataclass
class ExternalDataSource:
    """Where to load example rows from instead of the inline table"""
    type: str
    source: str
    sheet: Optional[str] = None
    delimiter: Optional[str] = None
    path: Optional[str] = None
    filter: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExternalDataSource":
        known = {k: data[k] for k in ('sheet', 'delimiter', 'path', 'filter') if k in data}
        source = data.get('source') or data.get('file') or ''
        source_type = data.get('type') or source.rsplit('.', 1)[-1]
        return cls(type=str(source_type).lower(), source=source, **known)


@dataclass
class Examples:
    """Example table of a scenario template"""
    headers: List[str]
    rows: List[List[str]]
    source: Optional[ExternalDataSource] = None
    name: str = ""


@dataclass
class Background:
    steps: List[Step] = field(default_factory=list)
    name: str = ""


@dataclass
class Scenario:
    """Scenario, or scenario template when it carries examples"""
    name: str
    steps: List[Step] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    examples: Optional[Examples] = None


@dataclass
class Feature:
    name: str
    scenarios: List[Scenario] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    background: Optional[Background] = None
    description: str = ""
    filename: Optional[str] = None


@dataclass
class ScenarioInstance:
    """One concrete, fully interpolated execution unit"""
    feature_name: str
    template_name: str
    name: str
    steps: List[Step]
    tags: List[str] = field(default_factory=list)
    background: List[Step] = field(default_factory=list)
    iteration: Optional[int] = None
    total_iterations: int = 1
    example_data: Dict[str, str] = field(default_factory=dict)
    used_columns: List[str] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return self.feature_name, self.name

    @property
    def identity(self) -> str:
        return f"{self.feature_name}::{self.name}"


def normalize_tag(tag: str) -> str:
    """Tags compare without their leading '@'"""
    return str(tag).strip().lstrip('@')


def normalize_tags(tags) -> List[str]:
    return [normalize_tag(tag) for tag in (tags or []) if normalize_tag(tag)]
