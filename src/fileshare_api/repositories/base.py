"""Shared CRUD plumbing for the PostgreSQL repositories.

All SQL is parameterized: column names only ever come from the allow-lists
declared on each repository, values always travel as `%s` parameters.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from fileshare_api.errors import NotFoundError, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def build_where(criteria: Optional[Mapping[str, Any]], columns: Mapping[str, str]) -> Tuple[str, List[Any]]:
    """
    Build a `WHERE` clause from equality criteria.

    :param criteria: Field name to required value. `None` values and unknown fields are skipped.
    :param columns: Allow-list mapping field names to column names.
    :return: The clause (empty when nothing applies) and its parameters.
    """
    conditions = []
    params: List[Any] = []
    for field, value in (criteria or {}).items():
        if value is None or field not in columns:
            continue
        conditions.append(f"{columns[field]} = %s")
        params.append(value)

    if not conditions:
        return "", params
    return "WHERE " + " AND ".join(conditions), params


def build_assignments(changes: Mapping[str, Any], columns: Mapping[str, str]) -> Tuple[str, List[Any]]:
    """
    Build the `SET` list of an `UPDATE`.

    Every allow-listed field present in `changes` is assigned, including explicit `None`.

    :raises ValidationError: if no field in `changes` is updatable.
    """
    assignments = []
    params: List[Any] = []
    for field, value in changes.items():
        if field not in columns:
            continue
        assignments.append(f"{columns[field]} = %s")
        params.append(value)

    if not assignments:
        raise ValidationError("No fields to update")
    return ", ".join(assignments), params


class BaseRepository(ABC, Generic[ModelT]):
    """
    Generic find/update/delete over one table.

    Subclasses declare the table, the row model, the filterable and updatable
    columns, and implement `create`.
    """

    table: str
    model: Type[ModelT]
    resource_name: str
    select_columns: str
    filter_columns: Dict[str, str]
    update_columns: Dict[str, str]
    order_by: str

    def __init__(self, db):
        self.db = db

    def _to_model(self, row: Optional[Dict[str, Any]]) -> Optional[ModelT]:
        if row is None:
            return None
        return self.model.model_validate(row)

    def _to_models(self, rows: List[Dict[str, Any]]) -> List[ModelT]:
        return [self.model.model_validate(row) for row in rows]

    def _prepare_changes(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        return changes

    def find_by_id(self, id: str) -> Optional[ModelT]:
        sql = f"SELECT {self.select_columns} FROM {self.table} WHERE id = %s"
        return self._to_model(self.db.query_one(sql, (id,)))

    def find_all(self, criteria: Optional[Mapping[str, Any]] = None) -> List[ModelT]:
        where, params = build_where(criteria, self.filter_columns)
        sql = f"SELECT {self.select_columns} FROM {self.table} {where} ORDER BY {self.order_by}"
        return self._to_models(self.db.query(sql, params))

    @abstractmethod
    def create(self, data) -> ModelT:
        ...

    def update(self, id: str, changes: Dict[str, Any]) -> ModelT:
        assignments, params = build_assignments(self._prepare_changes(changes), self.update_columns)
        sql = f"UPDATE {self.table} SET {assignments} WHERE id = %s RETURNING {self.select_columns}"
        row = self.db.query_one(sql, (*params, id))
        if row is None:
            raise NotFoundError(self.resource_name)
        return self._to_model(row)

    def delete(self, id: str) -> bool:
        rows = self.db.query(f"DELETE FROM {self.table} WHERE id = %s RETURNING id", (id,))
        return len(rows) > 0

    def exists(self, id: str) -> bool:
        return self.db.query_one(f"SELECT 1 FROM {self.table} WHERE id = %s", (id,)) is not None
