from __future__ import annotations

import types

import pytest

from run_iamviz.export import render as render_mod
from run_iamviz.util.errors import OutputError, RenderError, SetupError


def test_find_renderer_missing(monkeypatch) -> None:
    monkeypatch.setattr(render_mod, "which", lambda name: None)

    with pytest.raises(SetupError, match="'dot' was not found"):
        render_mod.find_renderer("dot")


def test_find_renderer_resolves_path(monkeypatch) -> None:
    monkeypatch.setattr(render_mod, "which", lambda name: f"/usr/bin/{name}")

    assert render_mod.find_renderer("dot") == "/usr/bin/dot"


def test_render_image_pipes_dot_text(monkeypatch) -> None:
    calls = []

    def fake_run(cmd, input=None, capture_output=False):
        calls.append((cmd, input))
        return types.SimpleNamespace(returncode=0, stdout=b"<svg/>", stderr=b"")

    monkeypatch.setattr(render_mod.subprocess, "run", fake_run)

    assert render_mod.render_image("digraph G {\n}\n", "/usr/bin/dot") == b"<svg/>"
    assert calls == [(["/usr/bin/dot", "-Tsvg"], b"digraph G {\n}\n")]


def test_render_image_failure_includes_stderr(monkeypatch) -> None:
    monkeypatch.setattr(
        render_mod.subprocess,
        "run",
        lambda cmd, input=None, capture_output=False: types.SimpleNamespace(
            returncode=1, stdout=b"", stderr=b"Error: syntax error in line 1"
        ),
    )

    with pytest.raises(RenderError, match="syntax error in line 1"):
        render_mod.render_image("digraph {", "dot")


def test_render_image_missing_executable(monkeypatch) -> None:
    def fake_run(cmd, input=None, capture_output=False):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(render_mod.subprocess, "run", fake_run)

    with pytest.raises(RenderError, match="Failed to start renderer"):
        render_mod.render_image("digraph G {}", "dot")


def test_render_image_rejects_unknown_format() -> None:
    with pytest.raises(RenderError, match="Unsupported output format"):
        render_mod.render_image("digraph G {}", "dot", fmt="gif")


def test_write_artifact_temp_file_is_unique() -> None:
    first = render_mod.write_artifact(b"one")
    second = render_mod.write_artifact(b"two")
    try:
        assert first != second
        assert first.name.startswith("iamviz-") and first.suffix == ".svg"
        assert first.read_bytes() == b"one"
    finally:
        first.unlink()
        second.unlink()


def test_write_artifact_explicit_path(tmp_path) -> None:
    out = tmp_path / "nested" / "graph.png"

    assert render_mod.write_artifact(b"png", out, suffix=".png") == out
    assert out.read_bytes() == b"png"


def test_open_command_per_platform() -> None:
    assert render_mod._open_command("file:///x.svg", "linux") == ["xdg-open", "file:///x.svg"]
    assert render_mod._open_command("file:///x.svg", "darwin") == ["open", "file:///x.svg"]
    assert render_mod._open_command("file:///x.svg", "win32") == [
        "rundll32",
        "url.dll,FileProtocolHandler",
        "file:///x.svg",
    ]


def test_open_in_viewer_unsupported_platform() -> None:
    with pytest.raises(OutputError, match="unsupported platform"):
        render_mod.open_in_viewer("file:///x.svg", platform="plan9")


def test_open_in_viewer_launches_without_waiting(monkeypatch) -> None:
    launched = []
    monkeypatch.setattr(render_mod.subprocess, "Popen", lambda cmd, **kwargs: launched.append(cmd))

    render_mod.open_in_viewer("file:///x.svg", platform="linux")

    assert launched == [["xdg-open", "file:///x.svg"]]
