"""Normalize primary-store values into the mirror's representation"""

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

from ..config.tables import ColumnKind, TableSyncConfig


class ValueCoercer:
    """
    Reshapes row values according to each column's declared kind

    psycopg2 hands back native lists for array columns, but arrays that were
    stored as text (or JSON-encoded strings) arrive as ``str``. The mirror
    expects real arrays, so:

    - ARRAY: a list passes through; a string is parsed as a JSON array and
      wrapped as ``[raw]`` when that fails; other values pass through
    - JSON: dicts and lists pass through; strings are parsed and kept raw
      when they are not valid JSON
    - every value is made JSON-safe for the REST API (dates, decimals, UUIDs)

    Falsy values (None, empty string, empty list) are left untouched.
    """

    def coerce_row(self, config: TableSyncConfig, row: Dict[str, Any]) -> Dict[str, Any]:
        """Restrict ``row`` to the configured columns and normalize each value"""
        record = {}
        for column in config.columns:
            if column.name not in row:
                continue
            value = row[column.name]
            if column.kind == ColumnKind.ARRAY:
                value = self.coerce_array(value)
            elif column.kind == ColumnKind.JSON:
                value = self.coerce_json(value)
            record[column.name] = to_json_safe(value)
        return record

    def coerce_rows(self, config: TableSyncConfig, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.coerce_row(config, row) for row in rows]

    def coerce_array(self, value: Any) -> Any:
        if not value:
            return value
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError:
                return [value]
            return parsed if isinstance(parsed, list) else [value]
        return value

    def coerce_json(self, value: Any) -> Any:
        if not value or not isinstance(value, str):
            return value
        try:
            return json.loads(value)
        except ValueError:
            return value


def to_json_safe(value: Any) -> Any:
    """Convert driver types the JSON encoder cannot handle"""
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return float(value)
    elif isinstance(value, (datetime, date, time)):
        return value.isoformat()
    elif isinstance(value, UUID):
        return str(value)
    elif isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    elif isinstance(value, list):
        return [to_json_safe(item) for item in value]
    elif isinstance(value, dict):
        return {key: to_json_safe(item) for key, item in value.items()}
    return value
