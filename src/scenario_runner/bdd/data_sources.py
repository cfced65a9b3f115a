import csv
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

import yaml

from ..core.exceptions import DataSourceError
from .model import ExternalDataSource

logger = logging.getLogger(__name__)

Table = Tuple[List[str], List[List[str]]]
RowFilter = Callable[[Dict[str, Any]], bool]

# Earliest operator wins; two-character operators before their one-character prefixes
_CONDITION = re.compile(r'^(.*?)(!=|>=|<=|>|<|~|\^|\$|:|=)(.*)$', re.DOTALL)


def create_filter(expression: str) -> RowFilter:
    """
    Build a row predicate from a filter expression.

    Supported operators:
        key=value      equality (case-insensitive, true/false match booleans)
        key!=value     inequality
        key~value      contains
        key^value      starts with
        key$value      ends with
        key>n key<n key>=n key<=n   numeric comparison
        key:a,b,c      value in list

    Conditions combine with ``&`` / ``AND`` and ``|`` / ``OR`` (OR binds loosest).
    """
    expression = expression.strip()

    or_parts = re.split(r'\||\s+OR\s+', expression, flags=re.IGNORECASE)
    if len(or_parts) > 1:
        filters = [create_filter(part) for part in or_parts]
        return lambda row: any(f(row) for f in filters)

    and_parts = re.split(r'&|\s+AND\s+', expression, flags=re.IGNORECASE)
    if len(and_parts) > 1:
        filters = [create_filter(part) for part in and_parts]
        return lambda row: all(f(row) for f in filters)

    match = _CONDITION.match(expression)
    if match and match.group(1).strip():
        key, operator, value = match.groups()
        return _condition(key.strip(), operator, value.strip())

    logger.warning(f"Invalid filter expression: {expression}")
    return lambda row: True


def _condition(key: str, operator: str, value: str) -> RowFilter:
    expected = value.lower()

    def matches(row: Dict[str, Any]) -> bool:
        actual = row.get(key)
        if actual is None:
            return expected in ('null', 'none', '')

        text = str(actual).lower()
        if operator in ('=', '!='):
            if expected in ('true', 'false') and isinstance(actual, bool):
                equal = actual == (expected == 'true')
            else:
                equal = text == expected
            return equal if operator == '=' else not equal
        if operator == '~':
            return expected in text
        if operator == '^':
            return text.startswith(expected)
        if operator == '$':
            return text.endswith(expected)
        if operator == ':':
            return text in [v.strip().lower() for v in value.split(',')]

        try:
            left, right = float(actual), float(value)
        except (TypeError, ValueError):
            return False
        return {
            '>': left > right,
            '<': left < right,
            '>=': left >= right,
            '<=': left <= right,
        }[operator]

    return matches


def _cell(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


class FileDataSourceResolver:
    """Loads example rows from csv, json or yaml files below ``base_dir``"""

    def __init__(self, base_dir: Union[str, Path] = "."):
        self.base_dir = Path(base_dir)

    def __call__(self, source: ExternalDataSource) -> Table:
        return self.load(source)

    def load(self, source: ExternalDataSource) -> Table:
        path = Path(source.source)
        if not path.is_absolute():
            path = self.base_dir / path

        if not path.exists():
            raise DataSourceError(f"Data source not found: {path}")

        logger.info(f"Loading external data from {source.type}: {path}")

        try:
            if source.type == 'csv':
                records = self._load_csv(path, source.delimiter or ',')
            elif source.type == 'json':
                records = self._load_json(path, source.path)
            elif source.type in ('yaml', 'yml'):
                records = self._load_yaml(path, source.path)
            else:
                raise DataSourceError(f"Unsupported data source type: {source.type}")
        except (OSError, ValueError, csv.Error, yaml.YAMLError) as e:
            raise DataSourceError(f"Could not read {path}: {e}") from e

        if source.filter:
            row_filter = create_filter(source.filter)
            records = [record for record in records if row_filter(record)]

        if not records:
            return [], []

        headers = list(records[0].keys())
        rows = [[_cell(record.get(header)) for header in headers] for record in records]
        logger.info(f"Loaded {len(rows)} rows with headers: {', '.join(headers)}")
        return headers, rows

    def _load_csv(self, path: Path, delimiter: str) -> List[Dict[str, Any]]:
        with open(path, newline='', encoding='utf-8') as f:
            return [dict(row) for row in csv.DictReader(f, delimiter=delimiter)]

    def _load_json(self, path: Path, key_path: str = None) -> List[Dict[str, Any]]:
        with open(path, encoding='utf-8') as f:
            return self._records(json.load(f), key_path, path)

    def _load_yaml(self, path: Path, key_path: str = None) -> List[Dict[str, Any]]:
        with open(path, encoding='utf-8') as f:
            return self._records(yaml.safe_load(f), key_path, path)

    def _records(self, data: Any, key_path: str, path: Path) -> List[Dict[str, Any]]:
        if key_path:
            for key in key_path.split('.'):
                if not isinstance(data, dict) or key not in data:
                    raise DataSourceError(f"Path '{key_path}' not found in {path}")
                data = data[key]

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise DataSourceError(f"Expected a list of objects in {path}")
        return data
