"""Command-line interface for textpulse."""

from __future__ import annotations

import argparse
import json
import sys
from typing import NoReturn

import yaml

from .exceptions import (
    ChainInitializationError,
    FatalChainError,
    InvalidCheckpointError,
    MissingArgumentError,
    SourceUnavailableError,
    StaleCheckpointError,
)
from .ingest import FileIngestor
from .logs import setup_logging
from .reader import IncrementalLineReader
from .registry import load_chain_config
from .stages import STAGES


def cmd_read(args: argparse.Namespace) -> int:
    """Handle the 'read' subcommand."""
    try:
        reader = IncrementalLineReader.open(
            args.file,
            encoding=args.encoding,
            auto_flush=not args.no_auto_flush,
        )
    except (SourceUnavailableError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with reader:
        try:
            reader.seek(args.offset)
        except (SourceUnavailableError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        count = 0
        position = reader.position
        try:
            for block in reader:
                if args.max is not None and count >= args.max:
                    break
                print(
                    json.dumps(
                        {
                            "content": block.content,
                            "start": block.start_offset,
                            "end": block.end_offset,
                            "length": block.length,
                        },
                        ensure_ascii=False,
                    )
                )
                count += 1
                position = block.end_offset
        except UnicodeDecodeError as e:
            print(f"Error: Can't decode line at offset {reader.position}: {e}", file=sys.stderr)
            return 1

        print(f"Position: {position}", file=sys.stderr)

    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' subcommand."""
    try:
        chain = load_chain_config(args.config)
    except (OSError, yaml.YAMLError, ValueError, MissingArgumentError) as e:
        print(f"Error: Invalid chain config {args.config}: {e}", file=sys.stderr)
        return 1

    errors = False
    try:
        with FileIngestor(
            args.file,
            chain,
            checkpoint_path=args.checkpoint,
            encoding=args.encoding,
        ) as ingestor:
            for result in ingestor.run(batch_size=args.batch_size):
                for record in result.records:
                    print(json.dumps(record.value, ensure_ascii=False, default=str))
                for failure in result.failures:
                    print(f"Error: {failure}", file=sys.stderr)
                    errors = True
    except (
        SourceUnavailableError,
        ChainInitializationError,
        FatalChainError,
        StaleCheckpointError,
        InvalidCheckpointError,
        UnicodeDecodeError,
    ) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 1 if errors else 0


def cmd_stages(args: argparse.Namespace) -> int:
    """Handle the 'stages' subcommand."""
    for name in sorted(STAGES):
        doc = (STAGES[name].__doc__ or "").strip().splitlines()
        summary = doc[0] if doc else ""
        required = ", ".join(STAGES[name].required_args)
        line = f"{name:<15} {summary}"
        if required:
            line += f" (requires: {required})"
        print(line)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="textpulse",
        description="Incremental, resumable line ingestion through filter chains",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # read subcommand
    read_parser = subparsers.add_parser(
        "read",
        help="Print lines with their byte offsets",
        description="Read available lines from a file, optionally resuming at an offset",
    )
    read_parser.add_argument("file", help="Path to text file")
    read_parser.add_argument(
        "--offset", type=int, default=0, help="Byte offset to resume from"
    )
    read_parser.add_argument(
        "--max", type=int, default=None, help="Maximum number of lines to print"
    )
    read_parser.add_argument(
        "--no-auto-flush",
        action="store_true",
        help="Don't emit a trailing line that lacks a terminator",
    )
    read_parser.add_argument("--encoding", default="utf-8", help="File encoding")
    read_parser.set_defaults(func=cmd_read)

    # run subcommand
    run_parser = subparsers.add_parser(
        "run",
        help="Run a file through a filter chain",
        description="Ingest a file through the chain described by a YAML plan",
    )
    run_parser.add_argument("file", help="Path to text file")
    run_parser.add_argument(
        "--config", "-c", required=True, help="YAML chain plan"
    )
    run_parser.add_argument(
        "--checkpoint", help="Checkpoint store to resume from and update"
    )
    run_parser.add_argument(
        "--batch-size", type=int, default=100, help="Lines read per poll"
    )
    run_parser.add_argument("--encoding", default="utf-8", help="File encoding")
    run_parser.set_defaults(func=cmd_run)

    # stages subcommand
    stages_parser = subparsers.add_parser(
        "stages",
        help="List available filter stages",
        description="List registered filter stage types",
    )
    stages_parser.set_defaults(func=cmd_stages)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.verbose else "WARNING")
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
