"""Map step: one inference call per token chunk."""

from __future__ import annotations

from typing import List, Sequence

from .concurrency import Deadline, run_bounded
from .errors import PipelineTimeout
from .llm.runner import LLMRunner
from .logging import get_logger
from .models import ChunkSummary, RepositoryRef, TokenChunk
from .prompting.builder import PromptBuilder


class ChunkSummarizer:
    """Produces one ChunkSummary per chunk; a failed call yields an error-flagged summary."""

    def __init__(
        self,
        runner: LLMRunner,
        prompt_builder: PromptBuilder | None = None,
        *,
        max_workers: int = 4,
        max_tokens: int = 400,
        temperature: float = 0.1,
    ) -> None:
        self.runner = runner
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.max_workers = max_workers
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.logger = get_logger("summarizer")

    def summarize(
        self,
        ref: RepositoryRef,
        chunks: Sequence[TokenChunk],
        *,
        document_kind: str,
        deadline: Deadline | None = None,
    ) -> List[ChunkSummary]:
        """Summarise every chunk and return the results in (path, chunk_index) order."""
        deadline = deadline or Deadline.unbounded()
        summaries = run_bounded(
            list(chunks),
            lambda chunk: self._summarize_one(ref, chunk, document_kind, deadline),
            max_workers=self.max_workers,
            deadline=deadline,
            stage="chunk summarisation",
        )
        ordered = sorted(summaries, key=lambda summary: summary.sort_key)
        failures = sum(1 for summary in ordered if summary.is_error)
        if failures:
            self.logger.warning("%d of %d chunk summaries failed", failures, len(ordered))
        return ordered

    def _summarize_one(
        self,
        ref: RepositoryRef,
        chunk: TokenChunk,
        document_kind: str,
        deadline: Deadline,
    ) -> ChunkSummary:
        request = self.prompt_builder.build_chunk_request(
            ref,
            chunk,
            document_kind=document_kind,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        label = f"chunk {chunk.chunk_number}/{chunk.total_chunks} of {chunk.path}"
        self.logger.debug("Summarising %s (%d tokens)", label, len(chunk.token_slice))
        try:
            text = self.runner.run(
                request.prompt,
                system=request.system,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                timeout=deadline.clamp(getattr(self.runner, "request_timeout", None)),
            )
        except Exception as exc:
            if deadline.expired:
                raise PipelineTimeout(f"Pipeline exceeded its time budget while summarising {label}") from exc
            self.logger.warning("Summarising %s failed: %s", label, exc)
            return ChunkSummary(
                path=chunk.path,
                chunk_index=chunk.chunk_index,
                total_chunks=chunk.total_chunks,
                text=f"Error extracting information from {label}: {exc}",
                is_error=True,
            )
        if not text.strip():
            return ChunkSummary(
                path=chunk.path,
                chunk_index=chunk.chunk_index,
                total_chunks=chunk.total_chunks,
                text=f"Error extracting information from {label}: empty response",
                is_error=True,
            )
        return ChunkSummary(
            path=chunk.path,
            chunk_index=chunk.chunk_index,
            total_chunks=chunk.total_chunks,
            text=text.strip(),
        )


__all__ = ["ChunkSummarizer"]
