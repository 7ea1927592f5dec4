"""ArtBot 命令行入口

    artbot generate "a bear portrait" --style bear_pfp --force accessory="bowler hat"
    artbot backends
    artbot serve --port 8000
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from artbot.agents.orchestrator import ArtGenerationOrchestrator
from artbot.config import configure_logging, get_settings
from artbot.services.backends import load_backend_catalog

logger = logging.getLogger(__name__)


def _parse_force(parser: argparse.ArgumentParser, pairs: list[str] | None) -> dict[str, str]:
    forced: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            parser.error(f"--force expects KEY=VALUE, got {pair!r}")
        forced[key.strip()] = value.strip()
    return forced


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="artbot", description="Multi-agent art prompt pipeline")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate an artwork from a concept")
    gen.add_argument("concept", help="Concept text, e.g. 'a bear portrait'")
    gen.add_argument("--style", default=None, help="Style name (default: DEFAULT_STYLE)")
    gen.add_argument("--series", default=None, help="Series id passed to the character generator")
    gen.add_argument("--category", default=None, help="Category id passed to the character generator")
    gen.add_argument(
        "--force",
        action="append",
        metavar="KEY=VALUE",
        help="Force a character attribute, e.g. --force accessory='bowler hat' (repeatable)",
    )
    gen.add_argument("--name", default=None, help="Output file name prefix")
    gen.add_argument("--output-dir", default=None, help="Directory for output files (default: OUTPUT_DIR)")
    gen.add_argument("--no-files", action="store_true", help="Do not write output files")
    gen.add_argument("--json", action="store_true", help="Print the full result as JSON")

    sub.add_parser("backends", help="List image backends in fallback order")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _cmd_generate(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.output_dir:
        settings = settings.model_copy(update={"output_dir": args.output_dir})
    forced = _parse_force(parser, args.force)

    orchestrator = ArtGenerationOrchestrator(settings=settings)
    result = asyncio.run(
        orchestrator.run_project(
            args.concept,
            style=args.style,
            series=args.series,
            category=args.category,
            force=forced,
            name=args.name,
            write_files=not args.no_files,
        )
    )

    if args.json:
        print(result.model_dump_json(by_alias=True, indent=2))
    elif result.success:
        print(f"Image:   {result.image_url}")
        print(f"Backend: {result.backend_id}")
        print(f"Prompt:  {result.prompt}")
        if result.character:
            print(f"Character: {result.character.get('name')}, {result.character.get('title')}")
        for kind, path in (result.files or {}).items():
            print(f"Saved {kind}: {path}")
    else:
        step = f" at step '{result.failed_step}'" if result.failed_step else ""
        print(f"Generation failed{step}: {result.error}", file=sys.stderr)
        for attempt in result.attempts:
            print(f"  - {attempt.backend_id}: {attempt.error_kind} {attempt.error}", file=sys.stderr)
    return 0 if result.success else 1


def _cmd_backends() -> int:
    settings = get_settings()
    try:
        catalog = load_backend_catalog(settings)
    except ValueError as exc:
        print(f"Invalid backend configuration: {exc}", file=sys.stderr)
        return 1
    for index, backend in enumerate(catalog.ladder()):
        rung = "primary" if index == 0 else f"fallback {index}"
        print(f"{rung:<11} {backend.id:<36} {backend.min_dim}-{backend.max_dim}px  {backend.output_shape.value}")
    if settings.enable_last_resort:
        print(f"{'last resort':<11} openai-images ({settings.openai_image_model})")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("artbot.main:app", host=args.host, port=args.port, log_level=get_settings().log_level.lower())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or get_settings().log_level)

    if args.command == "generate":
        return _cmd_generate(parser, args)
    if args.command == "backends":
        return _cmd_backends()
    return _cmd_serve(args)


if __name__ == "__main__":
    sys.exit(main())
