from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
import respx

from agent import cli
from reader.stream import StreamRecord
from shared.enums import LogType


@pytest.fixture()
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in ("OML_API_KEY", "OML_BASE_URL", "OML_APP_NAME", "OML_ENV"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda verbose: None)
    path = tmp_path / "config.toml"
    path.write_text('api_key = "cli-key"\nbase_url = "http://collector.test"\n', encoding="utf-8")
    return path


@respx.mock
def test_query_prints_rows_as_json_lines(config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    route = respx.get("http://collector.test/logs").mock(
        return_value=httpx.Response(200, json={"logs": [{"message": "a"}, {"message": "b"}]})
    )

    assert cli.main(["--config", str(config_file), "query", "--type", "error", "--limit", "2"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert [json.loads(line) for line in lines] == [{"message": "a"}, {"message": "b"}]
    assert route.calls.last.request.url.params["limit"] == "2"


@respx.mock
def test_query_failure_returns_nonzero(config_file: Path) -> None:
    respx.get("http://collector.test/logs").mock(return_value=httpx.Response(403, text="denied"))
    assert cli.main(["--config", str(config_file), "query"]) == 1


@respx.mock
def test_send_delivers_single_event(config_file: Path) -> None:
    route = respx.post("http://collector.test/send").mock(return_value=httpx.Response(200))

    assert cli.main(["--config", str(config_file), "send", "deploy finished", "--type", "success"]) == 0

    body = json.loads(route.calls.last.request.content)
    assert len(body["logs"]) == 1
    sent = body["logs"][0]
    assert sent["type"] == "success"
    assert sent["message"] == "deploy finished"
    assert sent["appName"] == "default"
    assert sent["environment"] == "development"
    assert isinstance(sent["ingested_at"], int)


def test_format_record() -> None:
    record = StreamRecord(
        id="1", ts="2024-01-02T03:04:05.000Z", level=LogType.ERROR, source="api", message="boom", payload={}
    )
    assert cli.format_record(record) == "2024-01-02T03:04:05.000Z error   [api] boom"

