import json

import httpx
from typer.testing import CliRunner

import ridehail.main
from ridehail.infra.http.uber_client import UberClient

runner = CliRunner()


def _install(monkeypatch, handler):
    def factory(**kwargs):
        return UberClient(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(ridehail.main, "UberClient", factory)


def test_help_shows_commands():
    result = runner.invoke(ridehail.main.app, ["--help"])
    assert result.exit_code == 0
    for command in ("history", "estimate-price", "estimate-time", "quote", "deliveries", "driver-payments", "profile", "init"):
        assert command in result.output


def test_history_prints_pages(tmp_path, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        history = [{"request_id": f"trip-{offset + i}", "status": "completed"} for i in range(2)]
        return httpx.Response(200, json={"count": 100, "limit": 2, "offset": offset, "history": history})

    _install(monkeypatch, handler)

    result = runner.invoke(
        ridehail.main.app,
        [
            "--token", "tok",
            "--log-dir", str(tmp_path),
            "--page-size", "2",
            "--max-pages", "3",
            "--throttle-ms", "-1",
            "history",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "request_id=trip-0" in result.output
    assert "request_id=trip-5" in result.output
    assert "pages=3 trips=6" in result.output
    assert list(tmp_path.glob("history_*.log"))


def test_history_without_token_exits_with_code_2(tmp_path):
    result = runner.invoke(ridehail.main.app, ["--log-dir", str(tmp_path), "history"])

    assert result.exit_code == 2
    assert "ERROR: no token configured" in result.output


def test_api_error_prints_hint_and_exits_with_code_2(tmp_path, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={"errors": [{"status": 403, "code": "forbidden", "title": "Forbidden"}]},
        )

    _install(monkeypatch, handler)

    result = runner.invoke(ridehail.main.app, ["--token", "tok", "--log-dir", str(tmp_path), "profile"])

    assert result.exit_code == 2
    assert 'ERROR: {"status":403,"code":"forbidden","title":"Forbidden"}' in result.output
    assert "HINT: you are forbidden from making a request" in result.output
    assert "ACTION: https://help.uber.com,support@uber.com" in result.output


def test_quote_requests_fare_per_product(tmp_path, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1.2/estimates/price":
            prices = [{"product_id": "p-1"}, {"product_id": "p-2"}, {"product_id": "p-1"}]
            return httpx.Response(200, json={"count": 0, "prices": prices})
        body = json.loads(request.content.decode("utf-8"))
        if body["product_id"] == "p-2":
            return httpx.Response(409, json={"errors": [{"status": 409, "code": "surge", "title": "Surge"}]})
        return httpx.Response(200, json={"fare": {"fare_id": "fare-1", "display": "$10"}})

    _install(monkeypatch, handler)

    result = runner.invoke(
        ridehail.main.app,
        ["--token", "tok", "--log-dir", str(tmp_path), "quote", "--start-lat", "1", "--start-lng", "2"],
    )

    assert result.exit_code == 0, result.output
    assert "product_id=p-1 fare_id=fare-1 display=$10" in result.output
    assert "product_id=p-2 error=" in result.output
    assert "products=2 failed=1" in result.output


def test_init_writes_credentials_file(tmp_path):
    target = tmp_path / "creds" / "credentials.json"

    result = runner.invoke(
        ridehail.main.app,
        [
            "--log-dir", str(tmp_path / "logs"),
            "init",
            "--access-token", "secret-access",
            "--refresh-token", "secret-refresh",
            "--expires-in", "3600",
            "--path", str(target),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "access_token=***" in result.output
    assert "secret-access" not in result.output
    stored = json.loads(target.read_text(encoding="utf-8"))
    assert stored["access_token"] == "secret-access"
    assert stored["refresh_token"] == "secret-refresh"
    assert stored["expiry"]


def test_credentials_file_is_used_when_no_token(tmp_path, monkeypatch):
    creds = tmp_path / "credentials.json"
    creds.write_text(json.dumps({"access_token": "file-token"}), encoding="utf-8")
    headers = []

    def handler(request: httpx.Request) -> httpx.Response:
        headers.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"payment_methods": [{"payment_method_id": "pm-1", "type": "visa"}]})

    _install(monkeypatch, handler)

    result = runner.invoke(
        ridehail.main.app,
        ["--credentials-file", str(creds), "--log-dir", str(tmp_path / "logs"), "payment-methods"],
    )

    assert result.exit_code == 0, result.output
    assert headers == ["Bearer file-token"]
    assert "payment_method_id=pm-1 type=visa" in result.output


def test_command_log_records_settings_without_secrets(tmp_path, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"count": 0, "limit": 50, "offset": 0, "history": []})

    _install(monkeypatch, handler)

    result = runner.invoke(
        ridehail.main.app,
        ["--token", "secret-tok-123", "--log-dir", str(tmp_path), "--throttle-ms", "-1", "history"],
    )

    assert result.exit_code == 0, result.output
    logText = "".join(p.read_text(encoding="utf-8") for p in tmp_path.glob("history_*.log"))
    assert "settings=" in logText
    assert "'token': '***'" in logText
    assert "secret-tok-123" not in logText
