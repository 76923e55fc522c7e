"""Prompt construction for the map and reduce steps."""

from .builder import PromptBuilder, PromptMessage, PromptRequest
from .constants import DOCUMENT_KINDS, default_target_path, document_title

__all__ = [
    "DOCUMENT_KINDS",
    "PromptBuilder",
    "PromptMessage",
    "PromptRequest",
    "default_target_path",
    "document_title",
]
