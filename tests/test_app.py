"""Tests for the Flask endpoints."""

import io
import json

import pytest

import app as app_module

BATCH = b"""time, id1, id2, amount, message
2016-11-02 09:49:29, 1, 2, 25.32, Spam
2016-11-02 09:49:30, 2, 3, 10.00, rent, utilities
2016-11-02 09:49:31, x, 3, 10.00, broken
"""

STREAM = b"""time, id1, id2, amount, message
2016-11-02 10:00:00, 1, 3, 1.00, hi
2016-11-02 10:00:01, 3, 1, 1.00, again
2016-11-02 10:00:02, 4, 5, 9.99, strangers
"""


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(app_module, "_last_result", None)
    monkeypatch.setattr(app_module, "_last_dot", None)
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as client:
        yield client


def _upload(client, batch=BATCH, stream=STREAM, batch_name="batch.csv", stream_name="stream.csv"):
    data = {}
    if batch is not None:
        data["batch"] = (io.BytesIO(batch), batch_name)
    if stream is not None:
        data["stream"] = (io.BytesIO(stream), stream_name)
    return client.post("/upload", data=data, content_type="multipart/form-data")


def test_home_and_ping(client):
    home = client.get("/").get_json()
    assert "/upload" in home["endpoints"]
    assert client.get("/ping").get_json() == {"status": "alive"}


def test_upload_grades_stream(client):
    resp = _upload(client)
    assert resp.status_code == 200
    body = resp.get_json()

    assert body["thresholds"] == [1, 2, 4]
    assert [v["distance"] for v in body["verdicts"]] == [2, 1, None]
    assert body["verdicts"][0] == {
        "id1": 1,
        "id2": 3,
        "distance": 2,
        "existing_link": False,
        "verdicts": ["unverified", "trusted", "trusted"],
    }
    assert body["verdicts"][2]["verdicts"] == ["unverified"] * 3

    summary = body["summary"]
    assert summary["batch_records"] == 2
    assert summary["stream_records"] == 3
    assert summary["rejected_records"] == {"batch": 1, "stream": 0}
    assert summary["total_users"] == 5
    assert summary["total_relationships"] == 4
    assert summary["existing_links"] == 1
    assert summary["unreachable"] == 1
    assert summary["trusted_per_tier"] == {"1": 1, "2": 2, "4": 2}


def test_upload_requires_both_files(client):
    resp = _upload(client, stream=None)
    assert resp.status_code == 400
    assert "stream" in resp.get_json()["error"]

    resp = _upload(client, batch=None)
    assert resp.status_code == 400
    assert "batch" in resp.get_json()["error"]


def test_upload_rejects_non_csv(client):
    resp = _upload(client, stream_name="stream.txt")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Only CSV files are accepted"}


def test_upload_rejects_empty_file(client):
    resp = _upload(client, batch=b"")
    assert resp.status_code == 400
    assert resp.get_json()["error"].startswith("Failed to parse CSV")


def test_downloads_before_and_after_upload(client):
    assert client.get("/download-json").status_code == 404
    assert client.get("/network.dot").status_code == 404

    _upload(client)

    resp = client.get("/download-json")
    assert resp.status_code == 200
    assert "attachment" in resp.headers["Content-Disposition"]
    assert json.loads(resp.data)["summary"]["stream_records"] == 3

    resp = client.get("/network.dot")
    assert resp.status_code == 200
    dot = resp.data.decode("utf-8")
    assert dot.startswith("digraph A {")
    assert "1 -> 3[label=1]" in dot
    assert "4 -> 5[label=1]" in dot


def test_oversized_upload_gets_json_error(client, monkeypatch):
    monkeypatch.setitem(app_module.app.config, "MAX_CONTENT_LENGTH", 100)
    resp = _upload(client)
    assert resp.status_code == 413
    assert resp.is_json
    assert "exceeds" in resp.get_json()["error"]
