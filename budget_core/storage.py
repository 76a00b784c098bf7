"""Persistence port and the JSON-file backend.

The store never talks to a backend directly; it goes through
:class:`StoragePort`.  ``JsonFileStorage`` keeps one document per user and
record kind, the server-side counterpart of a browser's local storage.
``budget_core.db.SqlStorage`` is the relational backend.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Tuple

from budget_core.domain import FamilyMember
from budget_core.errors import RecordNotFound, StorageError
from budget_core.transforms import (
    KINDS, member_from_dict, member_to_dict, record_from_dict, record_to_dict,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class StoragePort(ABC):

    @abstractmethod
    def list_records(self, kind: str, user_id: str) -> Tuple:
        pass

    @abstractmethod
    def create(self, kind: str, user_id: str, record) -> None:
        pass

    @abstractmethod
    def update(self, kind: str, user_id: str, record) -> None:
        pass

    @abstractmethod
    def delete(self, kind: str, user_id: str, record_id: str) -> None:
        pass

    @abstractmethod
    def list_family(self, family_id: str) -> Tuple[FamilyMember, ...]:
        pass

    @abstractmethod
    def add_family_member(self, member: FamilyMember) -> None:
        pass

    @abstractmethod
    def remove_family_member(self, family_id: str, member_id: str) -> None:
        pass


def check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise StorageError(f"unknown record kind: {kind}")


_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_keys(row: dict) -> dict:
    return {_CAMEL.sub("_", key).lower(): value for key, value in row.items()}


def migrate_document(data) -> Tuple[dict, bool]:
    """Bring a stored document up to SCHEMA_VERSION.

    Version 0 is a bare JSON array with camelCase keys (``paidBy``,
    ``userId``, ``targetPercentage``...).  Returns (document, migrated).
    """
    if isinstance(data, list):
        return {"version": SCHEMA_VERSION, "records": [_snake_keys(row) for row in data]}, True
    if not isinstance(data, dict) or not isinstance(data.get("records"), list):
        raise StorageError("unrecognised document shape")
    version = data.get("version", SCHEMA_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        raise StorageError(f"document version must be an integer, got {version!r}")
    if version > SCHEMA_VERSION:
        raise StorageError(f"document version {version} is newer than supported {SCHEMA_VERSION}")
    return data, False


class JsonFileStorage(StoragePort):

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _user_dir(self, user_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", user_id)
        return self.data_dir / "users" / safe

    def _path(self, kind: str, user_id: str) -> Path:
        check_kind(kind)
        return self._user_dir(user_id) / f"{kind}.json"

    def _family_path(self, family_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", family_id)
        return self.data_dir / "families" / f"{safe}.json"

    def _read_rows(self, path: Path) -> List[dict]:
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (json.JSONDecodeError, OSError) as e:
            raise StorageError(f"could not read {path}: {e}") from e
        try:
            document, migrated = migrate_document(raw)
        except StorageError as e:
            raise StorageError(f"{path}: {e}") from e
        if migrated:
            logger.info("Migrated %s to schema version %d", path, SCHEMA_VERSION)
            self._write_rows(path, document["records"])
        return document["records"]

    def _write_rows(self, path: Path, rows: List[dict]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as handle:
                json.dump({"version": SCHEMA_VERSION, "records": rows}, handle, indent=2)
        except OSError as e:
            raise StorageError(f"could not write {path}: {e}") from e
        logger.debug("Wrote %d records to %s", len(rows), path)

    def list_records(self, kind: str, user_id: str) -> Tuple:
        path = self._path(kind, user_id)
        try:
            return tuple(record_from_dict(kind, row) for row in self._read_rows(path))
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"malformed {kind} record in {path}: {e}") from e

    def create(self, kind: str, user_id: str, record) -> None:
        path = self._path(kind, user_id)
        rows = self._read_rows(path)
        rows.append(record_to_dict(record))
        self._write_rows(path, rows)

    def update(self, kind: str, user_id: str, record) -> None:
        path = self._path(kind, user_id)
        rows = self._read_rows(path)
        for index, row in enumerate(rows):
            if row.get("id") == record.id:
                rows[index] = record_to_dict(record)
                break
        else:
            raise RecordNotFound(kind, record.id)
        self._write_rows(path, rows)

    def delete(self, kind: str, user_id: str, record_id: str) -> None:
        path = self._path(kind, user_id)
        rows = self._read_rows(path)
        kept = [row for row in rows if row.get("id") != record_id]
        if len(kept) == len(rows):
            raise RecordNotFound(kind, record_id)
        self._write_rows(path, kept)

    def list_family(self, family_id: str) -> Tuple[FamilyMember, ...]:
        rows = self._read_rows(self._family_path(family_id))
        return tuple(member_from_dict(row) for row in rows)

    def add_family_member(self, member: FamilyMember) -> None:
        path = self._family_path(member.family_id)
        rows = self._read_rows(path)
        rows.append(member_to_dict(member))
        self._write_rows(path, rows)

    def remove_family_member(self, family_id: str, member_id: str) -> None:
        path = self._family_path(family_id)
        rows = self._read_rows(path)
        kept = [row for row in rows if row.get("id") != member_id]
        if len(kept) == len(rows):
            raise RecordNotFound("family_members", member_id)
        self._write_rows(path, kept)
