"""Public API for mmdrender."""
from .render import (
    DocumentParseError,
    FileReadError,
    FileWriteError,
    InvalidFormat,
    MmdrenderError,
    ProcessLaunchError,
    RenderOptions,
    build_invocation,
    discover_outputs,
    render,
    resize_svg,
    rewrite_outputs,
    run_renderer,
)

__all__ = [
    "render",
    "build_invocation",
    "run_renderer",
    "discover_outputs",
    "resize_svg",
    "rewrite_outputs",
    "RenderOptions",
    "MmdrenderError",
    "InvalidFormat",
    "ProcessLaunchError",
    "FileReadError",
    "FileWriteError",
    "DocumentParseError",
]
