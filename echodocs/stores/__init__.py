"""Persistence helpers for generated documents."""

from .documents import DocumentKey, DocumentRecord, DocumentStore, JsonDocumentStore

__all__ = ["DocumentKey", "DocumentRecord", "DocumentStore", "JsonDocumentStore"]
