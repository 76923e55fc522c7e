"""Builds chunk and assembly prompts from per-document-kind templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence

from jinja2 import Environment, FileSystemLoader, TemplateNotFound

from ..models import ChunkSummary, RepositoryRef, TokenChunk, TreeEntry
from .constants import TREE_LISTING_LIMIT, document_title


@dataclass(frozen=True)
class PromptMessage:
    """Represents a single chat message for LLM prompting."""

    role: str
    content: str


@dataclass
class PromptRequest:
    """Encapsulates a chat-completion request for one pipeline step."""

    messages: List[PromptMessage]
    max_tokens: int | None
    temperature: float | None
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def system(self) -> str | None:
        for message in self.messages:
            if message.role == "system":
                return message.content
        return None

    @property
    def prompt(self) -> str:
        return "\n\n".join(message.content for message in self.messages if message.role == "user")


class PromptBuilder:
    """Renders the map (chunk) and reduce (assembly) prompts for a document kind."""

    SUMMARY_SEPARATOR = "\n\n---\n\n"

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir
        self._env = self._create_env(templates_dir)

    def build_chunk_request(
        self,
        ref: RepositoryRef,
        chunk: TokenChunk,
        *,
        document_kind: str,
        max_tokens: int | None,
        temperature: float | None,
    ) -> PromptRequest:
        system = self._render(
            "chunk",
            document_kind,
            repository=ref.full_name,
            branch=ref.branch,
            path=chunk.path,
            chunk_number=chunk.chunk_number,
            total_chunks=chunk.total_chunks,
            document_title=document_title(document_kind),
        )
        fence = _fence_for(chunk.text)
        user = (
            f"File: {chunk.path} (chunk {chunk.chunk_number}/{chunk.total_chunks})\n\n"
            f"{fence}\n{chunk.text}\n{fence}"
        )
        return PromptRequest(
            messages=[
                PromptMessage(role="system", content=system),
                PromptMessage(role="user", content=user),
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            metadata={"path": chunk.path, "chunk_index": chunk.chunk_index},
        )

    def build_assembly_request(
        self,
        ref: RepositoryRef,
        summaries: Sequence[ChunkSummary],
        *,
        document_kind: str,
        max_tokens: int | None,
        temperature: float | None,
        include_failed: bool = False,
        tree: Sequence[TreeEntry] | None = None,
    ) -> PromptRequest:
        """Render the reduce prompt; ``tree`` adds a capped D/F layout listing."""
        system = self._render(
            "assemble",
            document_kind,
            repository=ref.full_name,
            branch=ref.branch,
            document_title=document_title(document_kind),
        )

        blocks: List[str] = []
        unavailable: List[str] = []
        for summary in summaries:
            label = f"{summary.path} (chunk {summary.chunk_index + 1}/{summary.total_chunks})"
            if summary.is_error and not include_failed:
                unavailable.append(label)
                continue
            prefix = "[summary unavailable] " if summary.is_error else ""
            blocks.append(f"Source: {label}\n{prefix}{summary.text.strip()}")

        lines = [f"Repository: {ref.full_name} (branch: {ref.branch})", ""]
        if tree:
            lines.extend(["Repository layout (D = directory, F = file):", *format_tree_listing(tree), ""])
        lines.extend(["Extracted information:", ""])
        lines.append(self.SUMMARY_SEPARATOR.join(blocks) if blocks else "(none)")
        if unavailable:
            lines.extend(
                [
                    "",
                    "The following sources could not be summarised and must not be described:",
                    *[f"- {label}" for label in unavailable],
                ]
            )

        return PromptRequest(
            messages=[
                PromptMessage(role="system", content=system),
                PromptMessage(role="user", content="\n".join(lines)),
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            metadata={
                "summaries": len(blocks),
                "unavailable": len(unavailable),
                "tree_entries": len(tree or ()),
            },
        )

    def _render(self, stage: str, document_kind: str, **context: object) -> str:
        try:
            template = self._env.get_template(f"{stage}/{document_kind}.j2")
        except TemplateNotFound:
            template = self._env.get_template(f"{stage}/default.j2")
        return template.render(**context).strip()

    @staticmethod
    def _create_env(templates_dir: Path | None) -> Environment:
        directories = []
        if templates_dir:
            directories.append(str(templates_dir))
        directories.append(str(Path(__file__).with_name("templates")))
        loader = FileSystemLoader(directories)
        return Environment(loader=loader, autoescape=False, trim_blocks=True, lstrip_blocks=True)


def format_tree_listing(entries: Sequence[TreeEntry], limit: int = TREE_LISTING_LIMIT) -> List[str]:
    lines = [
        f"{'D' if entry.kind == TreeEntry.DIRECTORY else 'F'} {entry.path}" for entry in entries[:limit]
    ]
    if len(entries) > limit:
        lines.append(f"... {len(entries) - limit} more entries not listed")
    return lines


def _fence_for(text: str) -> str:
    fence = "```"
    while fence in text:
        fence += "`"
    return fence


__all__ = ["PromptBuilder", "PromptMessage", "PromptRequest", "format_tree_listing"]
