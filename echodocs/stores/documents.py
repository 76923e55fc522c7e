"""Persistent record of the last document generated per user, repository, branch, and kind."""

from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

_STORE_VERSION = 1

DocumentKey = Tuple[str, str, str, str]


@dataclass(frozen=True)
class DocumentRecord:
    """Snapshot of a synthesis run as seen by the document list."""

    owner_user: str
    repository: str
    branch: str
    document_kind: str
    title: str
    body: str
    status: str
    placeholder: bool = False
    remote_locator: Optional[str] = None
    revision_marker: Optional[str] = None
    updated_at: str = ""

    @property
    def key(self) -> DocumentKey:
        return (self.owner_user, self.repository, self.branch, self.document_kind)


class DocumentStore(Protocol):
    def save(self, record: DocumentRecord) -> None: ...

    def get(self, key: DocumentKey) -> Optional[DocumentRecord]: ...


class JsonDocumentStore:
    """Stores document records in a single JSON file, one entry per key."""

    def __init__(self, path: Path | None) -> None:
        self._path = path
        self._entries: Dict[str, Dict[str, object]] = {}
        self._lock = threading.Lock()
        if self._path is not None:
            self._load(self._path)

    def save(self, record: DocumentRecord) -> None:
        if not record.updated_at:
            stamp = datetime.now(UTC).isoformat().replace("+00:00", "Z")
            record = DocumentRecord(**{**asdict(record), "updated_at": stamp})
        with self._lock:
            self._entries[_encode_key(record.key)] = asdict(record)
            self._persist()

    def get(self, key: DocumentKey) -> Optional[DocumentRecord]:
        with self._lock:
            raw = self._entries.get(_encode_key(key))
        return _record_from_dict(raw) if raw is not None else None

    def list_for_user(self, owner_user: str) -> List[DocumentRecord]:
        with self._lock:
            raws = list(self._entries.values())
        records = [record for record in map(_record_from_dict, raws) if record and record.owner_user == owner_user]
        return sorted(records, key=lambda record: record.updated_at, reverse=True)

    # ------------------------------------------------------------------
    # Internal helpers

    def _persist(self) -> None:
        if self._path is None:
            return
        payload = {"version": _STORE_VERSION, "documents": self._entries}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            return
        documents = data.get("documents")
        if not isinstance(documents, dict):
            return
        self._entries = {
            key: raw
            for key, raw in documents.items()
            if isinstance(key, str) and _record_from_dict(raw) is not None
        }


def _encode_key(key: DocumentKey) -> str:
    return "\x1f".join(key)


def _record_from_dict(payload: object) -> Optional[DocumentRecord]:
    if not isinstance(payload, dict):
        return None
    required = ("owner_user", "repository", "branch", "document_kind", "title", "body", "status")
    if not all(isinstance(payload.get(name), str) for name in required):
        return None
    return DocumentRecord(
        owner_user=payload["owner_user"],
        repository=payload["repository"],
        branch=payload["branch"],
        document_kind=payload["document_kind"],
        title=payload["title"],
        body=payload["body"],
        status=payload["status"],
        placeholder=bool(payload.get("placeholder", False)),
        remote_locator=payload.get("remote_locator") if isinstance(payload.get("remote_locator"), str) else None,
        revision_marker=payload.get("revision_marker") if isinstance(payload.get("revision_marker"), str) else None,
        updated_at=str(payload.get("updated_at") or ""),
    )


__all__ = ["DocumentKey", "DocumentRecord", "DocumentStore", "JsonDocumentStore"]
