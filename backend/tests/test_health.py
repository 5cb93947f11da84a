from app.api.routes import health


def test_health_endpoints(client, engine, monkeypatch):
    monkeypatch.setattr(health, "engine", engine)

    assert client.get("/api/health").json() == {"status": "ok"}

    live = client.get("/api/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"

    ready = client.get("/api/health/ready")
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["status"] == "ok"
    assert payload["database"]["schema_ok"] is True
    assert payload["database"]["missing_tables"] == []
    assert payload["pipeline"]["max_resource_suggestions"] >= 1


def test_ready_reports_missing_schema(client, monkeypatch):
    from sqlalchemy import create_engine
    from sqlalchemy.pool import StaticPool

    empty = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    monkeypatch.setattr(health, "engine", empty)

    ready = client.get("/api/health/ready")

    assert ready.status_code == 503
    payload = ready.json()
    assert payload["status"] == "degraded"
    assert "classes" in payload["database"]["missing_tables"]
    empty.dispose()
