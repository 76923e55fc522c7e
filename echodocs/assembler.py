"""Reduce step: a single inference call that turns summaries into the final document."""

from __future__ import annotations

import re
from typing import Sequence

from .concurrency import Deadline
from .errors import AssemblyFailed, PipelineTimeout
from .llm.runner import LLMRunner
from .logging import get_logger
from .models import ChunkSummary, RepositoryRef, SynthesizedDocument, TreeEntry
from .prompting.builder import PromptBuilder
from .prompting.constants import document_title

_H1_PATTERN = re.compile(r"^#\s+(?P<title>.+?)\s*#*\s*$")
_FENCED_DOCUMENT = re.compile(r"^```(?:markdown|md)?\s*\n(?P<body>.*)\n```\s*$", re.DOTALL)


class DocumentAssembler:
    """Builds a SynthesizedDocument from the ordered chunk summaries."""

    def __init__(
        self,
        runner: LLMRunner,
        prompt_builder: PromptBuilder | None = None,
        *,
        max_tokens: int = 3800,
        temperature: float = 0.3,
        include_failed: bool = False,
    ) -> None:
        self.runner = runner
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.include_failed = include_failed
        self.logger = get_logger("assembler")

    def assemble(
        self,
        ref: RepositoryRef,
        summaries: Sequence[ChunkSummary],
        *,
        document_kind: str,
        deadline: Deadline | None = None,
        tree: Sequence[TreeEntry] | None = None,
    ) -> SynthesizedDocument:
        deadline = deadline or Deadline.unbounded()
        ordered = sorted(summaries, key=lambda summary: summary.sort_key)
        usable = [summary for summary in ordered if not summary.is_error]
        if not usable:
            raise AssemblyFailed(
                f"No usable chunk summaries for {ref}: all {len(ordered)} summarisation calls failed"
            )

        request = self.prompt_builder.build_assembly_request(
            ref,
            ordered,
            document_kind=document_kind,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            include_failed=self.include_failed,
            tree=tree,
        )
        self.logger.info(
            "Assembling %s for %s from %d summaries (%d unavailable)",
            document_title(document_kind),
            ref,
            len(usable),
            len(ordered) - len(usable),
        )
        deadline.check("document assembly")
        try:
            markdown = self.runner.run(
                request.prompt,
                system=request.system,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                timeout=deadline.clamp(getattr(self.runner, "request_timeout", None)),
            )
        except Exception as exc:
            if deadline.expired:
                raise PipelineTimeout("Pipeline exceeded its time budget during document assembly") from exc
            raise AssemblyFailed(f"Assembling the document for {ref} failed: {exc}") from exc

        body = _unwrap_fence(markdown.strip())
        if not body:
            raise AssemblyFailed(f"Assembling the document for {ref} returned no content")
        title, body = _ensure_title(body, f"{document_title(document_kind)} for {ref.full_name}")
        return SynthesizedDocument(
            title=title,
            body=body,
            source_ref=ref,
            document_kind=document_kind,
        )


def _unwrap_fence(markdown: str) -> str:
    match = _FENCED_DOCUMENT.match(markdown)
    return match.group("body").strip() if match else markdown


def _ensure_title(body: str, default_title: str) -> tuple[str, str]:
    in_fence = False
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith(("```", "~~~")):
            in_fence = not in_fence
            continue
        match = None if in_fence else _H1_PATTERN.match(stripped)
        if match:
            return match.group("title"), body.rstrip() + "\n"
    return default_title, f"# {default_title}\n\n{body.rstrip()}\n"


__all__ = ["DocumentAssembler"]
