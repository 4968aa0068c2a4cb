from __future__ import annotations

import threading

from run_iamviz.gcp import clients


def test_client_cache_reuses_by_thread_and_endpoint(monkeypatch) -> None:
    calls = []

    def fake_build(name, version, credentials=None, client_options=None, cache_discovery=True):
        calls.append((name, version, client_options, cache_discovery))
        return object()

    monkeypatch.setattr(clients, "build", fake_build)
    clients.clear_client_cache()
    creds = object()

    c1 = clients.get_run_client(creds, "us-central1")
    c2 = clients.get_run_client(creds, "us-central1")
    c3 = clients.get_run_client(creds)

    assert c1 is c2
    assert c1 is not c3
    assert calls == [
        ("run", "v1", {"api_endpoint": "https://us-central1-run.googleapis.com/"}, False),
        ("run", "v1", None, False),
    ]

    other_thread = []
    t = threading.Thread(target=lambda: other_thread.append(clients.get_run_client(creds, "us-central1")))
    t.start()
    t.join()

    assert other_thread[0] is not c1
    assert len(calls) == 3
