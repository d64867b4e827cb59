import time
from functools import partial

import pytest
from fastapi.testclient import TestClient

from api import deps
from core import config, lifespan as lifespan_module
from core.state import RefreshState
from gtfs.errors import ConfigurationError, PipelineError
from gtfs.processor import run_pipeline
from main import create_app

from conftest import SOURCE_URL, FakeResponse, FakeSession


@pytest.fixture
def state(monkeypatch):
    fresh = RefreshState()
    monkeypatch.setattr(deps, "refresh_state", fresh)
    monkeypatch.setattr(lifespan_module, "refresh_state", fresh)
    return fresh


@pytest.fixture
def client(public_dir, state):
    app = create_app(public_dir=str(public_dir), use_lifespan=False)
    return TestClient(app)


@pytest.fixture
def published(fake_session, data_root, public_dir, state):
    feed = run_pipeline(SOURCE_URL, data_root=str(data_root), public_dir=str(public_dir), session=fake_session)
    state.published = feed
    state.last_attempt = state.last_success = time.time()
    return feed


def test_root_is_liveness_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "Hello world!"


def test_status_before_publish(client, state):
    state.last_error = "download failed"
    body = client.get("/api/status").json()
    assert body["status"] == "Error"
    assert "download failed" in body["message"]
    assert body["published_files"] == []


def test_status_loading(client, state):
    state.in_progress = True
    body = client.get("/api/status").json()
    assert body["status"] == "Loading"
    assert body["update_in_progress"] is True


def test_status_ok_after_publish(client, published):
    body = client.get("/api/status").json()
    assert body["status"] == "OK"
    assert sorted(body["published_files"]) == sorted(published.files)
    assert body["last_successful_update_utc"] is not None


def test_status_warning_after_failed_refresh(client, published, state):
    state.last_error = "PipelineError: connection reset"
    body = client.get("/api/status").json()
    assert body["status"] == "Warning"
    assert body["last_error"] == "PipelineError: connection reset"


def test_status_warning_persists_while_retrying(client, published, state):
    state.last_error = "PipelineError: connection reset"
    state.in_progress = True
    body = client.get("/api/status").json()
    assert body["status"] == "Warning"
    assert body["update_in_progress"] is True


def test_files_unavailable_before_publish(client):
    assert client.get("/api/files").status_code == 503


def test_files_listing(client, published):
    body = client.get("/api/files").json()
    assert body["archive"]["path"] == "/gtfs.zip"
    assert body["archive"]["size_bytes"] > 0
    assert len(body["files"]) == 12
    paths = {item["path"] for item in body["files"]}
    assert "/gtfs/regional-stop-times.txt" in paths


def test_published_archive_and_files_are_served(client, published, public_dir):
    archive = client.get("/gtfs.zip")
    assert archive.status_code == 200
    assert archive.content == (public_dir / "gtfs.zip").read_bytes()

    single = client.get("/gtfs/suburban-calendar-dates.txt")
    assert single.status_code == 200
    assert single.content == (public_dir / "gtfs" / "suburban-calendar-dates.txt").read_bytes()

    assert client.get("/gtfs/unknown.txt").status_code == 404


def test_startup_fails_without_gtfs_url(monkeypatch, public_dir, state):
    monkeypatch.setattr(config, "GTFS_URL", None)
    app = create_app(public_dir=str(public_dir))

    with pytest.raises(ConfigurationError):
        with TestClient(app):
            pass


def test_startup_fails_when_initial_pipeline_fails(monkeypatch, data_root, public_dir, state):
    monkeypatch.setattr(config, "GTFS_URL", SOURCE_URL)
    session = FakeSession({SOURCE_URL: FakeResponse(b"<html/>", headers={"Content-Type": "text/html"})})
    monkeypatch.setattr(lifespan_module, "build_pipeline_runner", lambda url: partial(
        run_pipeline, url, data_root=str(data_root), public_dir=str(public_dir), session=session))
    app = create_app(public_dir=str(public_dir))

    with pytest.raises(PipelineError):
        with TestClient(app):
            pass
    assert state.published is None


def test_startup_publishes_before_serving(monkeypatch, fake_session, data_root, public_dir, state):
    monkeypatch.setattr(config, "GTFS_URL", SOURCE_URL)
    monkeypatch.setattr(lifespan_module, "build_pipeline_runner", lambda url: partial(
        run_pipeline, url, data_root=str(data_root), public_dir=str(public_dir), session=fake_session))
    app = create_app(public_dir=str(public_dir))

    with TestClient(app) as client:
        assert state.published is not None
        assert state.update_task is not None
        assert client.get("/api/status").json()["status"] == "OK"
        assert client.get("/gtfs.zip").status_code == 200

    assert state.update_task is None
