import base64
import json

import pytest
from typer.testing import CliRunner

from uprelay.cli import app

from conftest import BASE_URL, SECRET


runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # keep a developer's .env out of the way
    monkeypatch.chdir(tmp_path)
    for name in ("API_SECRET", "BASE_URL", "APP_ID"):
        monkeypatch.delenv(name, raising=False)


def test_token_prints_bundle(monkeypatch):
    monkeypatch.setenv("API_SECRET", SECRET)
    monkeypatch.setenv("BASE_URL", BASE_URL)
    monkeypatch.setenv("APP_ID", "cli-app")

    result = runner.invoke(app, ["token", "--region", "eu-west-1"])
    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert lines[0] == "Here is your uploadthing token"
    assert json.loads(base64.b64decode(lines[1])) == {
        "apiKey": SECRET,
        "appId": "cli-app",
        "regions": ["eu-west-1"],
        "ingestHost": BASE_URL,
    }


def test_token_rejects_secret_without_prefix(monkeypatch):
    monkeypatch.setenv("API_SECRET", "not-a-secret")
    monkeypatch.setenv("BASE_URL", BASE_URL)

    result = runner.invoke(app, ["token"])
    assert result.exit_code == 1
    assert 'API_SECRET must start with "sk_"' in result.output


def test_token_requires_settings(monkeypatch):
    monkeypatch.setenv("BASE_URL", BASE_URL)

    result = runner.invoke(app, ["token"])
    assert result.exit_code == 1
    assert "API_SECRET" in result.output
