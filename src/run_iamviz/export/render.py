from __future__ import annotations

import os
import subprocess
import sys
import tempfile
from pathlib import Path
from shutil import which
from typing import Callable, List, Optional

from ..util.errors import OutputError, RenderError, SetupError

OUTPUT_FORMATS = ("svg", "png", "pdf")
DEFAULT_RENDERER = "dot"

Opener = Callable[[str], None]


def find_renderer(binary: str = DEFAULT_RENDERER) -> str:
    """
    Resolve the Graphviz executable, failing before any API traffic if it is absent.
    """
    path = which(binary)
    if not path:
        raise SetupError(
            f"'{binary}' was not found on PATH. Install Graphviz and retry "
            "(e.g. apt-get install graphviz or brew install graphviz)."
        )
    return path


def render_image(dot_text: str, renderer: str, fmt: str = "svg") -> bytes:
    """
    Pipe the graph description through the renderer and return the image bytes.
    """
    if fmt not in OUTPUT_FORMATS:
        raise RenderError(f"Unsupported output format {fmt!r}; expected one of: {', '.join(OUTPUT_FORMATS)}")
    try:
        proc = subprocess.run(
            [renderer, f"-T{fmt}"],
            input=dot_text.encode("utf-8"),
            capture_output=True,
        )
    except OSError as e:
        raise RenderError(f"Failed to start renderer {renderer!r}: {e}") from e
    if proc.returncode != 0:
        stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
        detail = stderr or f"exit code {proc.returncode}"
        raise RenderError(f"failed to convert to {fmt}, dot error output:\n{detail}")
    return proc.stdout


def write_artifact(data: bytes, path: Optional[Path] = None, *, suffix: str = ".svg") -> Path:
    """
    Write the rendered image to path, or to a fresh file in the temp directory.
    """
    try:
        if path is None:
            fd, name = tempfile.mkstemp(prefix="iamviz-", suffix=suffix)
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            return Path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path
    except OSError as e:
        raise OutputError(f"failed to write rendered graph: {e}") from e


def file_url(path: Path) -> str:
    return path.resolve().as_uri()


def _open_command(url: str, platform: str) -> List[str]:
    if platform.startswith("linux"):
        return ["xdg-open", url]
    if platform == "darwin":
        return ["open", url]
    if platform in ("win32", "cygwin"):
        return ["rundll32", "url.dll,FileProtocolHandler", url]
    raise OutputError(f"unsupported platform {platform}")


def open_in_viewer(url: str, *, platform: Optional[str] = None) -> None:
    """
    Hand the URL to the desktop's default handler without waiting for it.
    """
    cmd = _open_command(url, platform or sys.platform)
    try:
        subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        raise OutputError(f"failed to launch {cmd[0]}: {e}") from e
