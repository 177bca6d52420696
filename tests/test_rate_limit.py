"""Rate limiting: client key and JSON 429 responses."""

from flask import Flask

from utils.rate_limit import get_rate_limit_key, init_rate_limiter


def _limited_app(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
    app = Flask(__name__)
    limiter = init_rate_limiter(app)

    @app.route("/ping")
    @limiter.limit("1 per minute")
    def ping():
        return "pong"

    return app


def test_second_request_gets_json_429(monkeypatch):
    client = _limited_app(monkeypatch).test_client()

    assert client.get("/ping").status_code == 200
    response = client.get("/ping")

    assert response.status_code == 429
    assert response.get_json()["error"] == "Too many requests. Please try again later."


def test_forwarded_clients_are_limited_separately(monkeypatch):
    client = _limited_app(monkeypatch).test_client()

    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429


def test_key_uses_first_forwarded_hop():
    app = Flask(__name__)
    with app.test_request_context("/", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}):
        assert get_rate_limit_key() == "203.0.113.7"
    with app.test_request_context("/", environ_base={"REMOTE_ADDR": "198.51.100.2"}):
        assert get_rate_limit_key() == "198.51.100.2"
