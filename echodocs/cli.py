"""CLI entrypoints for echodocs commands."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from .config import SELECTION_MODES, load_config
from .errors import ConfigError
from .logging import configure_logging
from .models import Credentials, OutcomeStatus, RepositoryRef
from .orchestrator import PipelineOrchestrator
from .prompting.constants import DOCUMENT_KINDS
from .stores.documents import JsonDocumentStore

GITHUB_TOKEN_ENV_KEYS = ("GITHUB_TOKEN",)
INFERENCE_KEY_ENV_KEYS = ("ECHODOCS_LLM_API_KEY", "OPENAI_API_KEY")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="echodocs",
        description="Generate repository documentation from source and commit it back to GitHub.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    synth_parser = subparsers.add_parser(
        "synthesize",
        help="Generate a document for a GitHub repository and publish it.",
    )
    _add_verbose_option(synth_parser, suppress_default=True)
    synth_parser.add_argument("repository", help="Repository to document, as OWNER/NAME.")
    synth_parser.add_argument("--branch", default="main", help="Branch to read from and commit to.")
    synth_parser.add_argument(
        "--kind",
        choices=DOCUMENT_KINDS,
        default=None,
        help="Kind of document to generate (defaults to user_manual).",
    )
    synth_parser.add_argument(
        "--target",
        default=None,
        help="Path of the file to write in the repository (defaults per document kind).",
    )
    synth_parser.add_argument(
        "--mode",
        choices=SELECTION_MODES,
        default=None,
        help="File selection mode: every text file or a curated high-signal subset.",
    )
    synth_parser.add_argument("--max-tokens-per-chunk", type=int, default=None)
    synth_parser.add_argument("--max-file-size", type=int, default=None, help="Skip files larger than this many bytes.")
    synth_parser.add_argument("--max-publish-retries", type=int, default=None)
    synth_parser.add_argument("--timeout", type=float, default=None, help="Overall time budget in seconds.")
    synth_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to .echodocs.yml or the directory holding it.",
    )
    synth_parser.add_argument(
        "--owner-user",
        default=None,
        help="Record the generated document for this user in the configured document store.",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for echodocs commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    if args.command == "synthesize":
        _run_synthesize(parser, args)
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(EXIT_FAILURE, "Unknown command\n")


def _run_synthesize(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    try:
        ref = RepositoryRef.parse(args.repository, args.branch)
        config = load_config(args.config)
        store = JsonDocumentStore(config.store_path) if config.store_path else None
        orchestrator = PipelineOrchestrator(config, document_store=store)
        options = orchestrator.default_options(
            document_kind=args.kind,
            selection_mode=args.mode,
            max_tokens_per_chunk=args.max_tokens_per_chunk,
            max_file_size_bytes=args.max_file_size,
            max_publish_retries=args.max_publish_retries,
            overall_timeout=args.timeout,
        )
    except (ValueError, ConfigError) as exc:
        parser.exit(EXIT_FAILURE, f"echodocs synthesize failed: {exc}\n")

    credentials = Credentials(
        github_token=_first_env_value(GITHUB_TOKEN_ENV_KEYS),
        inference_api_key=_first_env_value(INFERENCE_KEY_ENV_KEYS),
    )
    outcome = orchestrator.synthesize(ref, credentials, args.target, options, owner_user=args.owner_user)

    if outcome.status is OutcomeStatus.FULL_SUCCESS:
        locator = outcome.publish.remote_locator if outcome.publish else None
        print(f"{outcome.message} {locator or ''}".rstrip())
        return
    if outcome.status is OutcomeStatus.PARTIAL_SUCCESS:
        if outcome.document is not None:
            print(outcome.document.body)
        parser.exit(EXIT_PARTIAL, f"{outcome.message}\n")
    kind = outcome.error_kind.value if outcome.error_kind else "unknown"
    parser.exit(EXIT_FAILURE, f"echodocs synthesize failed ({kind}): {outcome.message}\nRun with --verbose for more details.\n")


def _first_env_value(keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return None


if __name__ == "__main__":
    main(sys.argv[1:])
