"""
===========================================
Data Manipulation Language (DML) fragments.
===========================================

Builds the pieces of INSERT and UPDATE statements that depend on the record
being written: column lists, VALUES row placeholders and SET assignments.
Values are never inlined; every one of them becomes a '?' placeholder.

Functions:
- assignments: SET list for UPDATE
- insert_rows: Column list and value rows for single and batch INSERT
- values_clause: VALUES (?, ?), (?, ?) for n rows of width m

Usage:
    from sql.dml import assignments, insert_rows, values_clause

    fragment = assignments({'name': 'Ada', 'active': 1})
    # fragment.text == 'name = ?, active = ?'

    columns, rows = insert_rows([{'a': 1}, {'a': 2}])
    values_clause(len(rows), len(columns))
    # 'VALUES (?), (?)'
"""

from collections import abc
from typing import Any, Iterable, List, Mapping, Tuple

from core.exceptions import InvalidArgumentError
from sql.clauses import Fragment
from sql.conditions import placeholders


def assignments(record: Mapping[str, Any]) -> Fragment:
    """
    Generate the SET list of an UPDATE statement.

    Args:
        record: Column -> new value

    Returns:
        Fragment with 'col = ?' pairs and the values in column order

    Raises:
        InvalidArgumentError: If record is empty
    """
    if not record:
        raise InvalidArgumentError("update() requires at least one column to set")

    text = ", ".join(f"{column} = ?" for column in record)
    return Fragment(text, tuple(record.values()))


def insert_rows(records: Iterable[Mapping[str, Any]]) -> Tuple[List[str], List[Tuple[Any, ...]]]:
    """
    Split records into one shared column list and value rows.

    The column list is taken from the first record. Every other record must
    have exactly the same keys; values are reordered to match the column list.

    Args:
        records: Records to insert

    Returns:
        Tuple of (columns, rows)

    Raises:
        InvalidArgumentError: If records is not a list of mappings, there are
            no records, a record is empty, or the key sets differ
    """
    if isinstance(records, (abc.Mapping, str, bytes)) or not isinstance(records, abc.Iterable):
        raise InvalidArgumentError(
            f"batch insert expects a list of mappings, got {type(records).__name__}"
        )

    records = list(records)
    if not records:
        raise InvalidArgumentError("insert requires at least one record")

    for position, record in enumerate(records):
        if not isinstance(record, abc.Mapping):
            raise InvalidArgumentError(
                f"Record {position} must be a mapping, got {type(record).__name__}"
            )

    columns = list(records[0].keys())
    if not columns:
        raise InvalidArgumentError("insert requires at least one column")

    expected = set(columns)
    rows = []
    for position, record in enumerate(records):
        if set(record.keys()) != expected:
            raise InvalidArgumentError(
                f"Record {position} has columns {sorted(record.keys())}, "
                f"expected {sorted(expected)}"
            )
        rows.append(tuple(record[column] for column in columns))

    return columns, rows


def values_clause(row_count: int, width: int) -> str:
    row = f"({placeholders(width)})"
    return "VALUES " + ", ".join(row for _ in range(row_count))
