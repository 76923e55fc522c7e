"""Pipeline orchestration for the synthesize flow."""

from __future__ import annotations

import time
from typing import Callable, List, Optional

from .assembler import DocumentAssembler
from .chunking import TokenChunker
from .concurrency import Deadline
from .config import EchoDocsConfig, SynthesisOptions
from .errors import ErrorKind, MissingCredentials, PipelineError, SelectionEmpty
from .failsafe import build_placeholder_document
from .github.client import GitHubClient
from .github.loader import FileContentLoader
from .github.publisher import OptimisticPublisher
from .github.tree import RepositoryTreeFetcher
from .llm.runner import LLMRunner
from .logging import get_logger
from .models import (
    Credentials,
    FileCandidate,
    PipelineOutcome,
    PipelineStats,
    RepositoryRef,
    SynthesizedDocument,
    TokenChunk,
)
from .prompting.builder import PromptBuilder
from .prompting.constants import TREE_LISTING_KINDS, default_target_path, document_title
from .selection import FileSelector
from .stores.documents import DocumentRecord, DocumentStore
from .summarizer import ChunkSummarizer

ClientFactory = Callable[[str], GitHubClient]
RunnerFactory = Callable[[str], LLMRunner]


class PipelineOrchestrator:
    """Coordinates one fetch, summarise, assemble, and publish run per call.

    Collaborators that hold credentials are built per invocation through the
    factories, so no token outlives the request that supplied it.
    """

    def __init__(
        self,
        config: EchoDocsConfig | None = None,
        *,
        client_factory: ClientFactory | None = None,
        runner_factory: RunnerFactory | None = None,
        chunker: TokenChunker | None = None,
        prompt_builder: PromptBuilder | None = None,
        document_store: DocumentStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.client_factory = client_factory or self._default_client_factory
        self.runner_factory = runner_factory or self._default_runner_factory
        self.chunker = chunker
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.document_store = document_store
        self.clock = clock
        self.logger = get_logger("orchestrator")

    def default_options(self, **overrides) -> SynthesisOptions:
        return SynthesisOptions.from_config(self.config, **overrides)

    def new_deadline(self, options: SynthesisOptions) -> Deadline:
        return Deadline(options.overall_timeout, clock=self.clock)

    def synthesize(
        self,
        ref: RepositoryRef,
        credentials: Credentials,
        target_path: str | None = None,
        options: SynthesisOptions | None = None,
        *,
        owner_user: str | None = None,
        deadline: Deadline | None = None,
    ) -> PipelineOutcome:
        """Run the pipeline and return a structured outcome; never raises a PipelineError.

        A caller that may abandon the run passes its own ``deadline`` and cancels
        it; queued work is skipped and nothing is published after that.
        """
        options = options or self.default_options()

        precondition = self._check_preconditions(ref, credentials)
        if precondition is not None:
            return precondition

        target = target_path or default_target_path(options.document_kind)
        deadline = deadline or self.new_deadline(options)
        stats = PipelineStats()
        document: Optional[SynthesizedDocument] = None

        self.logger.info(
            "Starting %s run for %s (target=%s, mode=%s)",
            options.document_kind,
            ref,
            target,
            options.selection_mode,
        )
        try:
            client = self.client_factory(credentials.github_token or "")
            runner = self.runner_factory(credentials.inference_api_key or "")
            document = self._generate(ref, options, client, runner, deadline, stats)
        except SelectionEmpty as exc:
            placeholder = build_placeholder_document(
                ref, options.document_kind, ErrorKind.SELECTION_EMPTY, reason=str(exc)
            )
            outcome = PipelineOutcome.failure(
                ErrorKind.SELECTION_EMPTY, str(exc), document=placeholder, stats=stats
            )
            return self._finish(outcome, ref, owner_user)
        except PipelineError as exc:
            if exc.kind is ErrorKind.ASSEMBLY_FAILED:
                document = build_placeholder_document(
                    ref, options.document_kind, ErrorKind.ASSEMBLY_FAILED, reason=str(exc)
                )
            self.logger.warning("Run for %s failed (%s): %s", ref, exc.kind.value, exc)
            outcome = PipelineOutcome.failure(exc.kind, str(exc), document=document, stats=stats)
            return self._finish(outcome, ref, owner_user)
        finally:
            if document is None:
                deadline.cancel()

        message = options.commit_message or (
            f"docs: Generate {document_title(options.document_kind)} for {ref.full_name}"
        )
        publisher = OptimisticPublisher(client, max_attempts=options.max_publish_retries)
        self.logger.info("Publishing %s to %s on %s", document.title, target, ref)
        result = publisher.publish(ref, target, document.body, message=message, deadline=deadline)
        deadline.cancel()

        if result.success:
            outcome = PipelineOutcome.full_success(document, result, stats=stats)
        elif result.error_kind is ErrorKind.TIMEOUT:
            outcome = PipelineOutcome.failure(
                ErrorKind.TIMEOUT,
                result.error or "Pipeline exceeded its time budget while publishing",
                document=document,
                stats=stats,
            )
        else:
            outcome = PipelineOutcome.partial_success(document, result, stats=stats)
        self.logger.info("Run for %s finished: %s", ref, outcome.status.value)
        return self._finish(outcome, ref, owner_user)

    # ------------------------------------------------------------------
    # Stages

    def _generate(
        self,
        ref: RepositoryRef,
        options: SynthesisOptions,
        client: GitHubClient,
        runner: LLMRunner,
        deadline: Deadline,
        stats: PipelineStats,
    ) -> SynthesizedDocument:
        entries = RepositoryTreeFetcher(client).fetch(ref, deadline=deadline)
        stats.files_total = sum(1 for entry in entries if entry.is_file)

        selector = FileSelector(
            max_file_size_bytes=options.max_file_size_bytes,
            mode=options.selection_mode,
            exclude_paths=options.exclude_paths,
        )
        selected = selector.select(entries)
        stats.files_selected = len(selected)
        if not selected:
            raise SelectionEmpty(f"No eligible files found in {ref} ({stats.files_total} files in tree)")

        deadline.check("content loading")
        loader = FileContentLoader(
            client,
            max_workers=options.fetch_concurrency,
            binary_threshold=options.binary_threshold,
        )
        candidates = loader.load(ref, selected, deadline=deadline)
        loaded = [candidate for candidate in candidates if not candidate.failed]
        stats.files_loaded = len(loaded)
        stats.files_failed = len(candidates) - len(loaded)
        stats.failed_paths = [candidate.path for candidate in candidates if candidate.failed]

        chunks = self._chunk(loaded, options)
        stats.chunks_total = len(chunks)
        if not chunks:
            raise SelectionEmpty(
                f"None of the {len(selected)} selected files in {ref} produced readable text"
            )

        deadline.check("chunk summarisation")
        summarizer = ChunkSummarizer(
            runner,
            self.prompt_builder,
            max_workers=options.summary_concurrency,
            max_tokens=options.summary_max_tokens,
            temperature=options.summary_temperature,
        )
        summaries = summarizer.summarize(
            ref, chunks, document_kind=options.document_kind, deadline=deadline
        )
        stats.chunks_failed = sum(1 for summary in summaries if summary.is_error)

        deadline.check("document assembly")
        assembler = DocumentAssembler(
            runner,
            self.prompt_builder,
            max_tokens=options.assembly_max_tokens,
            temperature=options.assembly_temperature,
            include_failed=options.include_failed_chunks,
        )
        return assembler.assemble(
            ref,
            summaries,
            document_kind=options.document_kind,
            deadline=deadline,
            tree=entries if options.document_kind in TREE_LISTING_KINDS else None,
        )

    def _chunk(self, candidates: List[FileCandidate], options: SynthesisOptions) -> List[TokenChunk]:
        chunker = self.chunker or TokenChunker(encoding_name=options.encoding)
        chunks: List[TokenChunk] = []
        for candidate in candidates:
            file_chunks = chunker.chunk(candidate.path, candidate.raw_text, options.max_tokens_per_chunk)
            self.logger.debug("%s: %d chunk(s)", candidate.path, len(file_chunks))
            chunks.extend(file_chunks)
        self.logger.info("Split %d files into %d chunks", len(candidates), len(chunks))
        return chunks

    # ------------------------------------------------------------------
    # Internal helpers

    def _check_preconditions(self, ref: RepositoryRef, credentials: Credentials) -> PipelineOutcome | None:
        missing = credentials.missing()
        if missing:
            error = MissingCredentials(f"Missing credentials: {', '.join(missing)}")
            self.logger.warning("%s", error)
            return PipelineOutcome.failure(error.kind, str(error))
        blank = [name for name in ("owner", "name", "branch") if not str(getattr(ref, name, "") or "").strip()]
        if blank:
            return PipelineOutcome.failure(
                ErrorKind.INVALID_REQUEST,
                f"Repository reference is incomplete: {', '.join(blank)} must not be empty",
            )
        return None

    def _finish(self, outcome: PipelineOutcome, ref: RepositoryRef, owner_user: str | None) -> PipelineOutcome:
        if self.document_store is None or not owner_user or outcome.document is None:
            return outcome
        document = outcome.document
        publish = outcome.publish
        record = DocumentRecord(
            owner_user=owner_user,
            repository=ref.full_name,
            branch=ref.branch,
            document_kind=document.document_kind,
            title=document.title,
            body=document.body,
            status=outcome.status.value,
            placeholder=document.placeholder,
            remote_locator=publish.remote_locator if publish else None,
            revision_marker=publish.new_revision_marker if publish else None,
        )
        try:
            self.document_store.save(record)
        except OSError as exc:
            self.logger.warning("Failed to record document for %s: %s", ref, exc)
        return outcome

    def _default_client_factory(self, token: str) -> GitHubClient:
        github = self.config.github if self.config else None
        return GitHubClient(
            token,
            api_url=github.api_url if github else None,
            request_timeout=(github.request_timeout if github and github.request_timeout else 30.0),
            user_agent=github.user_agent if github else None,
        )

    def _default_runner_factory(self, api_key: str) -> LLMRunner:
        llm = self.config.llm if self.config else None
        return LLMRunner(
            llm.model if llm else None,
            api_key=api_key,
            base_url=llm.base_url if llm else None,
            request_timeout=(llm.request_timeout if llm and llm.request_timeout else 60.0),
            max_retries=(llm.max_retries if llm and llm.max_retries is not None else 1),
        )


def synthesize(
    repository_ref: RepositoryRef,
    credentials: Credentials,
    target_path: str | None = None,
    options: SynthesisOptions | None = None,
    *,
    config: EchoDocsConfig | None = None,
) -> PipelineOutcome:
    """Convenience wrapper running a default orchestrator once."""
    return PipelineOrchestrator(config).synthesize(repository_ref, credentials, target_path, options)


__all__ = ["PipelineOrchestrator", "synthesize"]
