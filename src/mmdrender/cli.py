"""Command-line interface for rendering Mermaid sources with mermaid-cli."""
from __future__ import annotations

import argparse
import json
import math
import os
import sys
import traceback
from dataclasses import dataclass
from typing import Iterable, Optional

from .render import (
    FORMATS,
    DocumentParseError,
    FileReadError,
    FileWriteError,
    InvalidFormat,
    MmdrenderError,
    ProcessLaunchError,
    RenderOptions,
    render,
)

DEBUG_ENV = "MMDRENDER_DEBUG"


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _positive_number(value: str) -> str:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}")
    if not math.isfinite(number):
        raise argparse.ArgumentTypeError(f"must be a finite number, got {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value!r}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="mmdrender",
        description="Render a Mermaid diagram with mermaid-cli and resize the produced SVG.",
    )
    parser.add_argument("-i", "--input", required=True, help="Path to the Mermaid/markdown input file")

    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "-o",
        "--output",
        help='Output file ending in svg, png, pdf or md (default: "./res/<input name>.svg")',
    )
    target.add_argument(
        "-f",
        "--format",
        help=f"Output format when --output is not given: {', '.join(FORMATS)}",
    )

    parser.add_argument("-H", "--height", type=_positive_number, help="Height of the image (default: 600)")
    parser.add_argument("-w", "--width", type=_positive_number, help="Width of the image (default: 800)")
    parser.add_argument("-s", "--scale", type=_positive_number, help="Puppeteer scale factor (default: 1)")
    parser.add_argument(
        "-b",
        "--backgroundColor",
        dest="background_color",
        help="Background color, e.g. transparent, red, '#F0F0F0' (default: white)",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress log output")
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")
    return parser


def _options_from_args(args: argparse.Namespace) -> RenderOptions:
    return RenderOptions(
        input_path=args.input,
        output_path=args.output,
        format=args.format,
        height=args.height,
        width=args.width,
        scale=args.scale,
        background_color=args.background_color,
        quiet=args.quiet,
    )


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, InvalidFormat):
        return CliError(
            exc.code,
            exc.message,
            hint=f"Use one of: {', '.join(FORMATS)}.",
            exit_code=2,
            file=exc.file,
        )
    if isinstance(exc, ProcessLaunchError):
        return CliError(
            exc.code,
            exc.message,
            hint="Install mermaid-cli (npm install -g @mermaid-js/mermaid-cli) or set MMDRENDER_RENDERER.",
            exit_code=3,
            file=exc.file,
            retryable=False,
        )
    if isinstance(exc, (FileReadError, FileWriteError)):
        return CliError(exc.code, exc.message, exit_code=4, file=exc.file)
    if isinstance(exc, DocumentParseError):
        return CliError(
            exc.code,
            exc.message,
            hint="The renderer did not produce a well-formed SVG document.",
            exit_code=5,
            file=exc.file,
            line=exc.line,
            column=exc.column,
            retryable=False,
        )
    if isinstance(exc, MmdrenderError):
        return CliError(exc.code, exc.message, exit_code=1, file=exc.file)
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "line": err.line,
            "column": err.column,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    debug_enabled = "--debug" in raw_argv or os.getenv(DEBUG_ENV) == "1"
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format
        render(_options_from_args(args))
        return 0
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint="Run with --help for the list of options.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
