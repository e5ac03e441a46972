import base64
import hashlib
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote

import pytest
import requests

from curriculo_cleanup.config import Settings
from curriculo_cleanup.models import Record

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)
RAW_BASE = "https://raw.githubusercontent.com/acme/vagas/main"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = json.dumps(payload) if payload is not None else ""

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeGitHub:
    """In-memory stand-in for the contents API, shaped like requests.Session."""

    def __init__(self, files=None):
        self.headers = {}
        self.files = {}
        self.calls = []
        self.failures = {}
        for path, content in (files or {}).items():
            self._store(path, content)

    def _store(self, path, content):
        if isinstance(content, str):
            content = content.encode("utf-8")
        sha = hashlib.sha1(path.encode() + content).hexdigest()
        self.files[path] = (sha, content)
        return sha

    def fail(self, method, path, *outcomes):
        """Queue responses (FakeResponse or exception) served before the real handler."""
        self.failures.setdefault((method, path), []).extend(outcomes)

    def sha(self, path):
        return self.files[path][0]

    def read_json(self, path):
        return json.loads(self.files[path][1].decode("utf-8"))

    def request(self, method, url, timeout=None, params=None, json=None):
        path = unquote(url.split("/contents/", 1)[1])
        self.calls.append((method, path, json))
        queued = self.failures.get((method, path))
        if queued:
            outcome = queued.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        if method == "GET":
            if path not in self.files:
                return FakeResponse(404, {"message": "Not Found"})
            sha, content = self.files[path]
            encoded = base64.encodebytes(content).decode("ascii")
            return FakeResponse(200, {"path": path, "sha": sha, "content": encoded, "encoding": "base64"})

        if method == "PUT":
            current = self.files.get(path)
            if current and json.get("sha") != current[0]:
                return FakeResponse(409, {"message": f"{path} does not match {json.get('sha')}"})
            if not current and json.get("sha"):
                return FakeResponse(404, {"message": "Not Found"})
            sha = self._store(path, base64.b64decode(json["content"]))
            return FakeResponse(201 if not current else 200, {"content": {"path": path, "sha": sha}})

        if method == "DELETE":
            current = self.files.get(path)
            if not current:
                return FakeResponse(404, {"message": "Not Found"})
            if json.get("sha") != current[0]:
                return FakeResponse(409, {"message": "sha mismatch"})
            del self.files[path]
            return FakeResponse(200, {"commit": {}})

        return FakeResponse(405, {"message": "Method Not Allowed"})

    def count(self, method, path=None):
        return sum(1 for m, p, _ in self.calls if m == method and (path is None or p == path))


def file_url(name):
    return f"{RAW_BASE}/curriculos/{name}"


def make_entry(cpf, vaga, days_ago, name=None, now=NOW, **extra):
    name = name or f"{cpf}-{vaga}-{days_ago}"
    entry = {
        "nome": name,
        "cpf": cpf,
        "vaga": vaga,
        "data": (now - timedelta(days=days_ago)).isoformat(),
        "arquivo": file_url(f"{name}.pdf"),
    }
    entry.update(extra)
    return entry


def make_record(cpf, vaga, days_ago, name=None, now=NOW):
    return Record.from_dict(make_entry(cpf, vaga, days_ago, name=name, now=now))


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("curriculo_cleanup.retry.time.sleep", lambda s: None)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        github_user="acme",
        repo_name="vagas",
        branch="main",
        token="secret-token",
        curriculo_dir="curriculos",
        scratch_dir=tmp_path / "temp",
        delete_interval=0.0,
        run_timeout=60.0,
    )


@pytest.fixture
def github():
    return FakeGitHub()


def seed_index(github, entries, files=True):
    github._store("dados.json", json.dumps(entries, indent=2))
    if files:
        for entry in entries:
            if isinstance(entry, dict) and str(entry.get("arquivo", "")).startswith(RAW_BASE + "/"):
                github._store(entry["arquivo"][len(RAW_BASE) + 1:], b"%PDF-1.4")


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection reset")
