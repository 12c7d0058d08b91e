"""JSON-file-backed item store with atomic writes.

The on-disk format is a JSON object ``{"tasks": [...], "todos": [...]}``
holding rows in the collaborator's field names. Instance uniqueness per
(parent, date) is enforced under the store lock.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..domain.dates import parse_optional_date, to_date_key
from ..domain.exceptions import DataSourceError, InstanceExistsError, ItemNotFoundError
from ..domain.models import ItemRow, ItemType

logger = logging.getLogger(__name__)

_COLLECTIONS = {ItemType.TASK: "tasks", ItemType.TODO: "todos"}

# Display fields an Instance copies from its parent
_INSTANCE_FIELDS = ("title", "project_id", "project_name", "list", "priority", "reminder_time")


def _completion_fields(kind: ItemType, fields: dict[str, Any]) -> dict[str, Any]:
    """Task rows track completion through ``status``; todo rows through ``completed``."""
    if kind is not ItemType.TASK or "completed" not in fields:
        return fields
    fields = dict(fields)
    completed = fields.pop("completed")
    fields.setdefault("status", "done" if completed else "todo")
    return fields


class JsonItemStore:
    """Persistent task/todo store implementing the ItemDataSource protocol."""

    def __init__(self, path: str | Path) -> None:
        """Create a store.

        Args:
            path: JSON file; created on first write if missing
        """
        self._path = Path(path)
        self._lock = threading.Lock()
        self._rows: dict[ItemType, list[dict[str, Any]]] = {kind: [] for kind in ItemType}

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Could not ensure directory for item store: %s", self._path.parent)

        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load rows from disk; a missing file means an empty store.

        Raises:
            DataSourceError: If the file exists but is not a valid store
        """
        with self._lock:
            if not self._path.exists():
                logger.debug("Item store file not found; starting empty: %s", self._path)
                self._rows = {kind: [] for kind in ItemType}
                return

            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, ValueError) as exc:
                raise DataSourceError(f"Failed to read item store {self._path}: {exc}") from exc
            if not isinstance(data, dict):
                raise DataSourceError(f"Item store {self._path} root must be an object")

            rows: dict[ItemType, list[dict[str, Any]]] = {}
            for kind, collection in _COLLECTIONS.items():
                entries = data.get(collection) or []
                rows[kind] = [dict(e) for e in entries if isinstance(e, dict) and e.get("id")]
            self._rows = rows
            logger.debug(
                "Loaded item store %s (%d tasks, %d todos)",
                self._path,
                len(rows[ItemType.TASK]),
                len(rows[ItemType.TODO]),
            )

    def _persist(self) -> None:
        """Write the store atomically. Called with the lock held."""
        data = {collection: self._rows[kind] for kind, collection in _COLLECTIONS.items()}

        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(data, tf, ensure_ascii=False, indent=2)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except OSError as exc:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise DataSourceError(f"Failed to persist item store {self._path}: {exc}") from exc

    def _to_rows(self, raw_rows: list[dict[str, Any]], kind: ItemType) -> list[ItemRow]:
        rows: list[ItemRow] = []
        for raw in raw_rows:
            try:
                rows.append(ItemRow.model_validate({**raw, "type": kind.value}))
            except ValidationError as exc:
                logger.warning("Skipping malformed %s row %r: %s", kind.value, raw.get("id"), exc)
        return rows

    def _snapshot(self, kind: ItemType) -> list[ItemRow]:
        with self._lock:
            raw_rows = [dict(r) for r in self._rows[kind]]
        return self._to_rows(raw_rows, kind)

    def _find_instance_locked(self, kind: ItemType, parent_id: str, key: str) -> Optional[dict[str, Any]]:
        for raw in self._rows[kind]:
            if raw.get("recurring_parent_id") != parent_id:
                continue
            due = parse_optional_date(raw.get("due_date"))
            if due is not None and due.isoformat() == key:
                return raw
        return None

    # ItemDataSource

    async def get_all_due_dated_tasks(self) -> list[ItemRow]:
        return [row for row in self._snapshot(ItemType.TASK) if row.due_date]

    async def get_all_due_dated_todos(self) -> list[ItemRow]:
        return [row for row in self._snapshot(ItemType.TODO) if row.due_date]

    async def get_recurring_parents(self, kind: ItemType) -> list[ItemRow]:
        return [
            row
            for row in self._snapshot(ItemType(kind))
            if row.recurrence_pattern and not row.is_instance
        ]

    async def get_item(self, kind: ItemType, item_id: str) -> Optional[ItemRow]:
        kind = ItemType(kind)
        with self._lock:
            raw = next((dict(r) for r in self._rows[kind] if r.get("id") == item_id), None)
        if raw is None:
            return None
        rows = self._to_rows([raw], kind)
        return rows[0] if rows else None

    async def has_instance_on_date(self, parent_id: str, due_date: str) -> bool:
        key = to_date_key(due_date)
        with self._lock:
            return any(self._find_instance_locked(kind, parent_id, key) for kind in ItemType)

    async def find_instance(
        self, kind: ItemType, parent_id: str, due_date: str
    ) -> Optional[ItemRow]:
        kind = ItemType(kind)
        key = to_date_key(due_date)
        with self._lock:
            raw = self._find_instance_locked(kind, parent_id, key)
            raw = dict(raw) if raw is not None else None
        if raw is None:
            return None
        rows = self._to_rows([raw], kind)
        return rows[0] if rows else None

    async def create_instance(self, parent: ItemRow, due_date: str) -> ItemRow:
        """Create an Instance of ``parent`` on ``due_date``.

        Raises:
            InstanceExistsError: If an Instance already exists for that date
            DataSourceError: If the store cannot be written
        """
        key = to_date_key(due_date)
        parent_raw = parent.to_store_dict()
        raw: dict[str, Any] = {field: parent_raw.get(field) for field in _INSTANCE_FIELDS}
        raw.update(
            {
                "id": str(uuid.uuid4()),
                "due_date": key,
                "completed": False,
                "recurring_parent_id": parent.id,
            }
        )
        raw = _completion_fields(parent.type, raw)

        with self._lock:
            existing = self._find_instance_locked(parent.type, parent.id, key)
            if existing is not None:
                raise InstanceExistsError(parent.id, key, existing_id=existing.get("id"))
            self._rows[parent.type].append(raw)
            try:
                self._persist()
            except DataSourceError:
                self._rows[parent.type].remove(raw)
                raise

        logger.info("Created %s instance %s of %s on %s", parent.type.value, raw["id"], parent.id, key)
        return ItemRow.model_validate({**raw, "type": parent.type.value})

    # Editing helpers used by the CLI and tests

    def add_item(self, kind: ItemType, title: str, **fields: Any) -> ItemRow:
        """Insert a new row and persist it.

        Args:
            kind: task or todo
            title: Display title
            **fields: Any other row fields (due_date, recurrence_pattern, ...)
        """
        kind = ItemType(kind)
        if not title:
            raise ValueError("title must be a non-empty string")
        raw: dict[str, Any] = {"id": str(uuid.uuid4()), "title": title, "completed": False}
        raw.update(fields)
        raw = _completion_fields(kind, raw)
        if isinstance(raw.get("recurrence_config"), dict):
            raw["recurrence_config"] = json.dumps(raw["recurrence_config"])
        row = ItemRow.model_validate({**raw, "type": kind.value})

        with self._lock:
            self._rows[kind].append(raw)
            try:
                self._persist()
            except DataSourceError:
                self._rows[kind].remove(raw)
                raise
        return row

    def update_item(self, kind: ItemType, item_id: str, **changes: Any) -> ItemRow:
        """Apply field changes to one row and persist.

        Raises:
            ItemNotFoundError: If the row does not exist
        """
        kind = ItemType(kind)
        with self._lock:
            raw = next((r for r in self._rows[kind] if r.get("id") == item_id), None)
            if raw is None:
                raise ItemNotFoundError(f"{kind.value} {item_id} not found")
            previous = dict(raw)
            raw.update(_completion_fields(kind, changes))
            if kind is ItemType.TASK:
                raw.pop("completed", None)
            try:
                self._persist()
            except DataSourceError:
                raw.clear()
                raw.update(previous)
                raise
            updated = dict(raw)
        return ItemRow.model_validate({**updated, "type": kind.value})
