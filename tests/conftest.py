"""Shared fixtures and stub clients for the drift monitor tests."""

from __future__ import annotations

import io
import json
import tarfile
import zipfile
from pathlib import Path
from typing import Any

import pytest
from botocore.exceptions import ClientError

from drift_monitor.config import Config
from drift_monitor.models import ProcessResult

SHA = "0123456789abcdef0123456789abcdef01234567"
OTHER_SHA = "fedcba9876543210fedcba9876543210fedcba98"
REPO = "acme/infra"

_MISSING = object()


class StubResponse:
    def __init__(
        self,
        status_code: int = 200,
        body: bytes = b"",
        headers: dict | None = None,
        json_data: Any = _MISSING,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self._json_data = json_data
        self.closed = False

    def json(self) -> Any:
        if self._json_data is not _MISSING:
            return self._json_data
        return json.loads(self.body.decode("utf-8"))

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start:start + chunk_size]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "StubResponse":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class StubSession:
    """Routes requests by exact URL; records every call."""

    def __init__(self, routes: dict | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, str, dict]] = []

    def _respond(self, method: str, url: str, kwargs: dict) -> StubResponse:
        self.calls.append((method, url, kwargs))
        if url not in self.routes:
            return StubResponse(status_code=404, body=b"not found")
        route = self.routes[url]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(url, kwargs)
        return route

    def get(self, url: str, **kwargs) -> StubResponse:
        return self._respond("GET", url, kwargs)

    def post(self, url: str, **kwargs) -> StubResponse:
        return self._respond("POST", url, kwargs)

    def urls(self) -> list[str]:
        return [url for _, url, _ in self.calls]


class StubS3:
    def __init__(self, body: bytes | None = None, error: Exception | None = None) -> None:
        self.body = body
        self.error = error
        self.calls: list[dict] = []

    def get_object(self, Bucket: str, Key: str) -> dict:  # noqa: N803
        self.calls.append({"Bucket": Bucket, "Key": Key})
        if self.error is not None:
            raise self.error
        return {"Body": io.BytesIO(self.body)}


class StubCloudWatch:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[dict] = []

    def put_metric_data(self, Namespace: str, MetricData: list) -> None:  # noqa: N803
        if self.error is not None:
            raise self.error
        self.calls.append({"Namespace": Namespace, "MetricData": MetricData})


class StubRunner:
    """Answers terraform subcommands from a table and ``du`` with fixed output."""

    def __init__(self, results: dict | None = None, du_output: str = "2048\t/scratch\n") -> None:
        self.results = dict(results or {})
        self.du_output = du_output
        self.calls: list[dict] = []
        self.strict_calls: list[tuple[str, list]] = []

    def run(self, command, args=(), env=None, cwd=None) -> ProcessResult:
        args = list(args)
        self.calls.append({"command": command, "args": args, "env": env, "cwd": cwd})
        result = self.results[args[0]]
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(command, args)
        return result

    def run_strict(self, command, args=(), cwd=None) -> str:
        self.strict_calls.append((command, list(args)))
        if isinstance(self.du_output, Exception):
            raise self.du_output
        return self.du_output

    def subcommands(self) -> list[str]:
        return [call["args"][0] for call in self.calls]


class RecordingSink:
    def __init__(self, name: str = "recorder", error: Exception | None = None) -> None:
        self.name = name
        self.error = error
        self.records: list = []

    def send(self, record) -> None:
        if self.error is not None:
            raise self.error
        self.records.append(record)


def client_error(code: str = "NoSuchKey", operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def make_zip(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def make_tarball(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def repo_tarball(sha: str = SHA, repo: str = REPO) -> bytes:
    folder = f"{repo.replace('/', '-')}-{sha[:7]}"
    return make_tarball({
        f"{folder}/main.tf": b'resource "null_resource" "x" {}\n',
        f"{folder}/README.md": b"infra\n",
    })


@pytest.fixture()
def scratch(tmp_path: Path) -> Path:
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture()
def config(scratch: Path) -> Config:
    return Config(
        state_bucket="tf-state",
        state_key="prod/terraform.tfstate",
        repo_identifier=REPO,
        repo_token="gh-token",
        scratch_dir=scratch,
    )
