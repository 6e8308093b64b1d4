import logging

from flask import Flask, jsonify

from api.middleware.request_logging import setup_request_logging_middleware


def _build_test_app():
    app = Flask(__name__)

    @app.route("/api/products", methods=["GET"])
    def products():
        return jsonify({"data": []})

    @app.route("/api/payments/webhook", methods=["POST"])
    def webhook():
        return jsonify({"received": True})

    @app.route("/api/checkout", methods=["POST"])
    def checkout():
        return jsonify({"error": "boom"}), 502

    setup_request_logging_middleware(app)
    app.config["TESTING"] = True
    return app


def _logged(caplog, path):
    return [r for r in caplog.records if f"api_request path={path}" in r.getMessage()]


def test_request_logging_sample_rate(monkeypatch, caplog):
    monkeypatch.setenv("REQUEST_LOG_ENABLED", "true")
    monkeypatch.setenv("REQUEST_LOG_SAMPLE_RATE", "1.0")
    monkeypatch.setenv("REQUEST_LOG_ENDPOINTS", "")

    client = _build_test_app().test_client()

    with caplog.at_level(logging.INFO, logger="api.request"):
        response = client.get("/api/products")

    assert response.status_code == 200
    assert _logged(caplog, "/api/products")


def test_request_logging_watchlist(monkeypatch, caplog):
    monkeypatch.setenv("REQUEST_LOG_ENABLED", "true")
    monkeypatch.setenv("REQUEST_LOG_SAMPLE_RATE", "0.0")
    monkeypatch.delenv("REQUEST_LOG_ENDPOINTS", raising=False)

    client = _build_test_app().test_client()

    with caplog.at_level(logging.INFO, logger="api.request"):
        client.get("/api/products")
        client.post("/api/payments/webhook")

    # Webhook deliveries are on the default watchlist; catalog reads are not
    assert _logged(caplog, "/api/payments/webhook")
    assert not _logged(caplog, "/api/products")


def test_server_errors_always_logged(monkeypatch, caplog):
    monkeypatch.setenv("REQUEST_LOG_ENABLED", "true")
    monkeypatch.setenv("REQUEST_LOG_SAMPLE_RATE", "0.0")
    monkeypatch.setenv("REQUEST_LOG_ENDPOINTS", "")

    client = _build_test_app().test_client()

    with caplog.at_level(logging.INFO, logger="api.request"):
        client.post("/api/checkout")

    records = _logged(caplog, "/api/checkout")
    assert records
    assert records[0].levelno == logging.WARNING


def test_disabled(monkeypatch, caplog):
    monkeypatch.setenv("REQUEST_LOG_ENABLED", "false")
    monkeypatch.setenv("REQUEST_LOG_SAMPLE_RATE", "1.0")

    client = _build_test_app().test_client()

    with caplog.at_level(logging.INFO, logger="api.request"):
        client.get("/api/products")

    assert not _logged(caplog, "/api/products")
