from __future__ import annotations

import types

import pytest

from run_iamviz.auth import providers
from run_iamviz.util.errors import AuthResolutionError, SetupError


def test_explicit_project_wins(monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "env-project")

    assert providers.infer_project("cli-project") == "cli-project"


def test_project_from_env(monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "env-project")

    assert providers.infer_project() == "env-project"


def test_project_from_gcloud(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    monkeypatch.setattr(providers, "which", lambda name: "/usr/bin/gcloud")
    calls = []

    def fake_run(cmd, text=False, capture_output=False):
        calls.append(cmd)
        return types.SimpleNamespace(returncode=0, stdout="demo-project\n", stderr="")

    monkeypatch.setattr(providers.subprocess, "run", fake_run)

    assert providers.infer_project() == "demo-project"
    assert calls == [["/usr/bin/gcloud", "config", "get-value", "core/project", "-q"]]


def test_gcloud_missing(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    monkeypatch.setattr(providers, "which", lambda name: None)

    with pytest.raises(SetupError, match="--project"):
        providers.infer_project()


def test_gcloud_unset_project(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    monkeypatch.setattr(providers, "which", lambda name: "/usr/bin/gcloud")
    monkeypatch.setattr(
        providers.subprocess,
        "run",
        lambda cmd, text=False, capture_output=False: types.SimpleNamespace(returncode=0, stdout="\n", stderr=""),
    )

    with pytest.raises(SetupError, match="Could not determine"):
        providers.infer_project()


def test_gcloud_failure(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    monkeypatch.setattr(providers, "which", lambda name: "/usr/bin/gcloud")
    monkeypatch.setattr(
        providers.subprocess,
        "run",
        lambda cmd, text=False, capture_output=False: types.SimpleNamespace(
            returncode=1, stdout="", stderr="ERROR: gcloud crashed"
        ),
    )

    with pytest.raises(SetupError, match="gcloud crashed"):
        providers.infer_project()


def test_resolve_credentials_maps_missing_adc(monkeypatch) -> None:
    class DummyDefaultCredentialsError(Exception):
        pass

    def _raise(scopes=None):
        raise DummyDefaultCredentialsError("no ADC")

    dummy_google = types.SimpleNamespace(
        auth=types.SimpleNamespace(
            default=_raise,
            exceptions=types.SimpleNamespace(DefaultCredentialsError=DummyDefaultCredentialsError),
        )
    )
    monkeypatch.setattr(providers, "google", dummy_google)

    with pytest.raises(AuthResolutionError, match="no ADC"):
        providers.resolve_credentials()
