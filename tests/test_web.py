"""Tests for the HTTP API, driving a real runtime loop over the in-memory backend."""

import asyncio
import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from next_up.config import config
from next_up.models import init_db
from next_up.runtime import PlaybackRuntime
from next_up.web import app, set_runtime, socketio


@pytest.fixture
def log_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'history.db'}")
    init_db(bind=engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def runtime(backend, log_factory):
    backend.related["current"] = ["next"]
    backend.add_video("next", price="3.00")
    backend.add_video("paid", price="2.00", creator_id="other")

    # Long ticks keep countdowns pending until a request acts on them
    runtime = PlaybackRuntime(backend, session_factory=log_factory, tick_interval=60)
    runtime.start()
    set_runtime(runtime)
    yield runtime
    set_runtime(None)
    runtime.stop()


@pytest.fixture
def client(runtime):
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


def open_video(client, video_id="current", viewer_id="v1"):
    return client.post("/api/sessions", json={"viewer_id": viewer_id, "video_id": video_id})


def wait_for_history(client, viewer_id, expected):
    data = []
    for _ in range(100):
        data = client.get(f"/api/history?viewer_id={viewer_id}").get_json()
        if len(data) >= expected:
            break
        time.sleep(0.02)
    return data


def test_requests_without_runtime_are_rejected():
    set_runtime(None)
    response = app.test_client().get("/api/status/v1")
    assert response.status_code == 503


def test_open_session(client):
    response = open_video(client)
    assert response.status_code == 200
    data = response.get_json()
    assert data["state"] == "ready"
    assert data["video"]["id"] == "current"
    assert data["video"]["locked"] is False
    assert data["balance"] == "10.00"

    status = client.get("/api/status/v1").get_json()
    assert status["state"] == "ready"


def test_open_session_validates_input(client):
    assert client.post("/api/sessions", json={}).status_code == 400
    assert client.post("/api/sessions", json={"viewer_id": "v1"}).status_code == 400
    response = client.post("/api/sessions", data="not json", content_type="text/plain")
    assert response.status_code == 400


def test_unknown_viewer_is_a_backend_error(client):
    response = open_video(client, viewer_id="ghost")
    assert response.status_code == 502
    assert "ghost" in response.get_json()["error"]


def test_unknown_session(client):
    assert client.get("/api/status/nobody").status_code == 404
    assert client.post("/api/sessions/nobody/ended").status_code == 404


def test_missing_video_is_unavailable(client):
    data = open_video(client, video_id="missing").get_json()
    assert data["state"] == "unavailable"
    assert data["error"]


def test_progress_validates_numbers(client):
    open_video(client)
    response = client.post("/api/sessions/v1/progress", json={"position": "abc", "duration": 10})
    assert response.status_code == 400

    response = client.post("/api/sessions/v1/progress", json={"position": 50, "duration": 100})
    assert response.status_code == 200


def test_end_cancel_and_history(client):
    open_video(client)
    data = client.post("/api/sessions/v1/ended").get_json()
    assert data["state"] == "counting_down"
    assert data["continuation"]["status"] == "AUTO_BUYING"
    assert data["continuation"]["target_id"] == "next"
    assert data["continuation"]["countdown"] == 5

    data = client.post("/api/sessions/v1/cancel").get_json()
    assert data["state"] == "no_decision"
    assert data["continuation"]["status"] is None

    history = wait_for_history(client, "v1", 1)
    assert len(history) == 1
    assert history[0]["outcome"] == "cancelled"
    assert history[0]["status"] == "AUTO_BUYING"
    assert history[0]["from_video_id"] == "current"
    assert history[0]["target_video_id"] == "next"


def test_play_now_buys_and_opens_the_next_video(client):
    open_video(client)
    client.post("/api/sessions/v1/ended")

    data = client.post("/api/sessions/v1/play-now").get_json()
    assert data["state"] == "ready"
    assert data["video"]["id"] == "next"
    assert data["video"]["locked"] is False
    assert data["balance"] == "7.00"

    history = wait_for_history(client, "v1", 1)
    assert history[0]["outcome"] == "purchased"


def test_confirm_opens_expensive_video_locked(client, backend):
    backend.add_video("next", price="8.00")
    open_video(client)

    data = client.post("/api/sessions/v1/ended").get_json()
    assert data["state"] == "idle_waiting"
    assert data["continuation"]["countdown"] is None

    data = client.post("/api/sessions/v1/confirm").get_json()
    assert data["video"]["id"] == "next"
    assert data["video"]["locked"] is True
    assert data["balance"] == "10.00"


def test_purchase_current_video(client):
    data = open_video(client, video_id="paid").get_json()
    assert data["video"]["locked"] is True

    data = client.post("/api/sessions/v1/purchase").get_json()
    assert data["video"]["locked"] is False
    assert data["balance"] == "8.00"
    assert data["purchase_error"] is None


def test_watch_later_toggle(client):
    open_video(client)
    data = client.post("/api/sessions/v1/watch-later").get_json()
    assert data["video"]["in_watch_later"] is True
    data = client.post("/api/sessions/v1/watch-later").get_json()
    assert data["video"]["in_watch_later"] is False


def test_stopped_runtime_is_unavailable(backend):
    set_runtime(PlaybackRuntime(backend))
    try:
        response = app.test_client().get("/api/status/v1")
    finally:
        set_runtime(None)
    assert response.status_code == 503


def received(socket_client, name):
    return [event["args"][0] for event in socket_client.get_received() if event["name"] == name]


def test_socket_status_request(client):
    open_video(client)
    socket_client = socketio.test_client(app)
    socket_client.get_received()

    socket_client.emit("request_status", {"viewer_id": "v1"})
    updates = received(socket_client, "status_update")
    assert updates[-1]["video"]["id"] == "current"

    socket_client.emit("request_status", {"viewer_id": "nobody"})
    assert received(socket_client, "status_error") == [{"error": "No playback session for this viewer"}]

    socket_client.emit("request_status", {})
    assert received(socket_client, "status_error")
    socket_client.disconnect()


def test_socket_status_request_times_out(client, runtime, monkeypatch):
    async def stalled(viewer_id):
        await asyncio.sleep(0.5)

    monkeypatch.setattr(runtime, "status", stalled)
    monkeypatch.setattr(config, "REQUEST_TIMEOUT", 0.05)
    socket_client = socketio.test_client(app)
    socket_client.get_received()

    socket_client.emit("request_status", {"viewer_id": "v1"})
    assert received(socket_client, "status_error") == [{"error": "Timed out"}]
    socket_client.disconnect()
