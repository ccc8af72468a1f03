"""Render Mermaid sources through mermaid-cli and resize the produced SVG files."""
from __future__ import annotations

import os
import shlex
import subprocess
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
XHTML_NS = "http://www.w3.org/1999/xhtml"
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)
ET.register_namespace("xhtml", XHTML_NS)

FORMATS = ("svg", "png", "pdf", "md")
DEFAULT_FORMAT = "svg"
DEFAULT_HEIGHT = "600"
DEFAULT_WIDTH = "800"
DEFAULT_RENDERER = ("npx", "mmdc")
RENDERER_ENV = "MMDRENDER_RENDERER"
DEFAULT_OUTPUT_DIR = "res"
SOURCE_SUFFIXES = (".md", ".mmd", ".markdown")

# mermaid-cli prints one " ✅ <path>" line per file it wrote.
SUCCESS_MARK = "✅"
SUCCESS_LEAD = f" {SUCCESS_MARK}"
SUCCESS_PREFIX = f"{SUCCESS_LEAD} "


class MmdrenderError(Exception):
    """Base error with a stable code for CLI mapping."""

    default_code = "E_RENDER"

    def __init__(self, message: str, *, code: Optional[str] = None, file: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.file = file

    def __str__(self) -> str:
        return self.message


class InvalidFormat(MmdrenderError, ValueError):
    """Raised when the requested or derived output format is not supported."""

    default_code = "E_FORMAT"


class ProcessLaunchError(MmdrenderError):
    """Raised when the renderer process cannot be started."""

    default_code = "E_LAUNCH"


class FileReadError(MmdrenderError):
    default_code = "E_IO_READ"


class FileWriteError(MmdrenderError):
    default_code = "E_IO_WRITE"


class DocumentParseError(MmdrenderError, ValueError):
    """Raised when a produced file is not well-formed XML."""

    default_code = "E_PARSE_XML"

    def __init__(self, message: str, *, file: Optional[str] = None, line: Optional[int] = None, column: Optional[int] = None) -> None:
        super().__init__(message, file=file)
        self.line = line
        self.column = column


@dataclass(frozen=True)
class RenderOptions:
    input_path: str
    output_path: Optional[str] = None
    format: Optional[str] = None
    height: Optional[str] = None
    width: Optional[str] = None
    scale: Optional[str] = None
    background_color: Optional[str] = None
    quiet: bool = False

    @property
    def resolved_height(self) -> str:
        return self.height or DEFAULT_HEIGHT

    @property
    def resolved_width(self) -> str:
        return self.width or DEFAULT_WIDTH


@dataclass(frozen=True)
class Invocation:
    command: Tuple[str, ...]
    output_path: str
    format: str


@dataclass(frozen=True)
class RenderResult:
    stdout: str
    returncode: int


def _info(quiet: bool, message: str) -> None:
    if not quiet:
        print(message)


def resolve_format(options: RenderOptions) -> str:
    """Return the explicit format, the output extension, or ``svg``."""
    if options.format is not None:
        fmt = options.format
    elif options.output_path is not None:
        fmt = options.output_path.rsplit(".", 1)[-1] if "." in options.output_path else ""
    else:
        fmt = DEFAULT_FORMAT
    if fmt not in FORMATS:
        raise InvalidFormat(
            f'unsupported output format "{fmt}" (expected one of: {", ".join(FORMATS)})',
            file=options.output_path,
        )
    return fmt


def renderer_command(renderer: Optional[Sequence[str]] = None) -> Tuple[str, ...]:
    if renderer:
        return tuple(renderer)
    configured = os.environ.get(RENDERER_ENV, "").strip()
    if configured:
        try:
            return tuple(shlex.split(configured))
        except ValueError as exc:
            raise ProcessLaunchError(
                f"invalid {RENDERER_ENV} command line {configured!r}: {exc}",
                file=RENDERER_ENV,
            ) from exc
    return DEFAULT_RENDERER


def default_output_path(input_path: str, cwd: Optional[Path] = None) -> Path:
    name = Path(input_path).name
    stem = name
    for suffix in SOURCE_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            stem = name[: -len(suffix)]
            break
    base = Path(cwd) if cwd is not None else Path.cwd()
    return base / DEFAULT_OUTPUT_DIR / f"{stem}.svg"


def build_invocation(
    options: RenderOptions,
    *,
    renderer: Optional[Sequence[str]] = None,
    cwd: Optional[Path] = None,
) -> Invocation:
    """Build the mermaid-cli command line for ``options``.

    Height and width are not passed to the renderer; :func:`rewrite_outputs`
    applies them to the produced SVG. When no output path is given the
    ``res/`` directory under ``cwd`` is created.
    """
    fmt = resolve_format(options)
    _info(options.quiet, f"Set the format: {fmt}")

    if options.output_path is not None:
        output = options.output_path
    else:
        target = default_output_path(options.input_path, cwd)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FileWriteError(
                f"failed to create output directory: {target.parent} ({exc})",
                file=str(target.parent),
            ) from exc
        output = str(target)

    command: List[str] = [*renderer_command(renderer), "-i", options.input_path, "-o", output]
    if options.scale is not None:
        _info(options.quiet, f"Set the scale: {options.scale}")
        command.extend(["-s", options.scale])
    if options.background_color is not None:
        _info(options.quiet, f"Set the background color: {options.background_color}")
        command.extend(["-b", options.background_color])
    if options.quiet:
        command.append("-q")
    return Invocation(command=tuple(command), output_path=output, format=fmt)


def run_renderer(invocation: Invocation) -> RenderResult:
    try:
        proc = subprocess.run(
            list(invocation.command),
            stdout=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        raise ProcessLaunchError(
            f"failed to launch renderer {invocation.command[0]!r}: {exc}",
            file=invocation.command[0],
        ) from exc
    return RenderResult(stdout=proc.stdout or "", returncode=proc.returncode)


def parse_success_line(line: str) -> Optional[str]:
    """Return the reported path if ``line`` is a renderer success line."""
    if not line.startswith(SUCCESS_LEAD):
        return None
    return line.replace(SUCCESS_PREFIX, "", 1)


def discover_outputs(stdout: Optional[str], *, quiet: bool = False) -> List[str]:
    outputs: List[str] = []
    for line in (stdout or "").split("\n"):
        path = parse_success_line(line)
        if path is None:
            continue
        _info(quiet, f"Created file {path}")
        outputs.append(path)
    return outputs


def resize_svg(root: ET.Element, *, height: str, width: str) -> None:
    style = root.get("style") or ""
    fragment = f"max-width: {width}px;"
    root.set("style", f"{style} {fragment}" if style else fragment)
    root.set("height", height)
    root.set("width", width)


def rewrite_output(path: str, *, height: str, width: str) -> None:
    target = Path(path)
    try:
        contents = target.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FileReadError(f"failed to read output file: {path} ({exc})", file=path) from exc

    try:
        root = ET.fromstring(contents)
    except ET.ParseError as exc:
        line, column = getattr(exc, "position", (None, None))
        raise DocumentParseError(
            f"failed to parse {path}: {exc}", file=path, line=line, column=column
        ) from exc

    resize_svg(root, height=height, width=width)

    try:
        target.write_text(ET.tostring(root, encoding="unicode"), encoding="utf-8")
    except OSError as exc:
        raise FileWriteError(f"failed to write output file: {path} ({exc})", file=path) from exc


def rewrite_outputs(paths: Iterable[str], *, height: str, width: str) -> None:
    for path in paths:
        rewrite_output(path, height=height, width=width)


def dispatch_format(fmt: str, paths: Sequence[str]) -> None:
    if fmt == "svg":
        return
    if fmt in ("png", "pdf", "md"):
        # TODO: convert the rewritten SVG files into png/pdf/md deliverables.
        return
    raise InvalidFormat(f'unsupported output format "{fmt}"')


def render(
    options: RenderOptions,
    *,
    renderer: Optional[Sequence[str]] = None,
    cwd: Optional[Path] = None,
) -> List[str]:
    """Run the full pipeline and return the files the renderer reported."""
    invocation = build_invocation(options, renderer=renderer, cwd=cwd)
    result = run_renderer(invocation)
    outputs = discover_outputs(result.stdout, quiet=options.quiet)
    rewrite_outputs(outputs, height=options.resolved_height, width=options.resolved_width)
    dispatch_format(invocation.format, outputs)
    return outputs
