from fastapi.testclient import TestClient

import probe_server
from cliq_notifier import CliqWebhookError
from order_notifier import ConfigError


def test_probe_explains_how_to_trigger_a_test_run():
    client = TestClient(probe_server.app)
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.text.startswith('To test the scheduled handler, try running "curl http://testserver/__scheduled?cron=')


def test_scheduled_endpoint_runs_requested_schedule(monkeypatch):
    calls = []

    async def fake_run(schedule):
        calls.append(schedule)
        return 2

    monkeypatch.setattr(probe_server, "run_invocation", fake_run)

    client = TestClient(probe_server.app)
    resp = client.get("/__scheduled", params={"cron": "0 5 * * *"})

    assert resp.status_code == 200
    assert resp.text == 'Ran "0 5 * * *": 2 message(s) sent.'
    assert calls == ["0 5 * * *"]


def test_scheduled_endpoint_reports_webhook_failure(monkeypatch):
    async def fake_run(schedule):
        raise CliqWebhookError(500, "Internal Server Error", "boom")

    monkeypatch.setattr(probe_server, "run_invocation", fake_run)

    resp = TestClient(probe_server.app).get("/__scheduled", params={"cron": "0 4 * * *"})

    assert resp.status_code == 502
    assert "boom" in resp.json()["detail"]


def test_scheduled_endpoint_reports_missing_configuration(monkeypatch):
    async def fake_run(schedule):
        raise ConfigError("Missing required environment variables: MAGENTO_HOST")

    monkeypatch.setattr(probe_server, "run_invocation", fake_run)

    resp = TestClient(probe_server.app).get("/__scheduled")

    assert resp.status_code == 500
    assert "MAGENTO_HOST" in resp.json()["detail"]
