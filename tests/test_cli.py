import json

import httpx
import pytest

from resumeup import cli
from resumeup.net.http import ApiClient


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ("RESUMEUP_BASE_URL", "RESUMEUP_API_KEY", "RESUMEUP_TOKEN", "RESUMEUP_PROJECT_ID"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
server:
  base_url: https://api.example.com
  api_key: pk_test
  project_id: proj-1
upload:
  chunk_mb: 1
  audit_log_dir: {tmp_path / "audit"}
""",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def fake_client(server, monkeypatch):
    def _make_client(cfg):
        return ApiClient(cfg.server.base_url, api_key=cfg.server.api_key, transport=httpx.MockTransport(server.handle))

    monkeypatch.setattr(cli, "_make_client", _make_client)


def test_check(config_file, capsys):
    assert cli.main(["--config", str(config_file), "check"]) == 0
    assert "Configuration check passed." in capsys.readouterr().out


def test_check_missing_config(tmp_path):
    assert cli.main(["--config", str(tmp_path / "none.yaml"), "check"]) == 1


def test_upload_and_status(config_file, fake_client, server, make_file, capsys):
    path = make_file(3 * 1024 * 1024 + 5)
    assert cli.main(["--config", str(config_file), "upload", str(path)]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["total_chunks"] == 4
    assert server.completed_files[result["file"]["file_id"]] == path.read_bytes()

    assert cli.main(["--config", str(config_file), "status", result["session_id"]]) == 0
    state = json.loads(capsys.readouterr().out)
    assert state["status"] == "completed"
    assert state["missing"] == []


def test_failed_upload_prints_resume_hint(config_file, fake_client, server, make_file, capsys):
    path = make_file(2 * 1024 * 1024)
    server.fail_chunks.add(1)
    assert cli.main(["--config", str(config_file), "upload", str(path), "--encoding", "post"]) == 1
    (session_id,) = server.sessions
    assert f"resumeup resume {session_id}" in capsys.readouterr().out

    server.fail_chunks.clear()
    assert cli.main(["--config", str(config_file), "resume", session_id, str(path)]) == 0
    assert server.sessions[session_id]["status"] == "completed"

    assert cli.main(["--config", str(config_file), "cancel", session_id]) == 0
    assert session_id not in server.sessions


def test_zero_chunk_mb_is_rejected(config_file, fake_client, server, make_file):
    path = make_file(10)
    assert cli.main(["--config", str(config_file), "upload", str(path), "--chunk-mb", "0"]) == 1
    assert server.requests == []
