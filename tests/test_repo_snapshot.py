from __future__ import annotations

from pathlib import Path

import pytest

from conftest import (
    OTHER_SHA,
    REPO,
    SHA,
    StubResponse,
    StubSession,
    make_tarball,
    repo_tarball,
)
from drift_monitor.archives import ArtifactCache
from drift_monitor.errors import ApiError, ArchiveLayoutError, DownloadError
from drift_monitor.repo_snapshot import RepositorySnapshotProvider

BRANCH_URL = f"https://api.github.com/repos/{REPO}/branches/master"


def tarball_url(sha: str) -> str:
    return f"https://api.github.com/repos/{REPO}/tarball/{sha}"


def codeload_url(sha: str) -> str:
    return f"https://codeload.github.com/{REPO}/legacy.tar.gz/{sha}"


def archive_routes(sha: str, body: bytes | None = None) -> dict:
    return {
        tarball_url(sha): StubResponse(status_code=302, headers={"Location": codeload_url(sha)}),
        codeload_url(sha): StubResponse(body=body if body is not None else repo_tarball(sha)),
    }


def _provider(scratch: Path, session: StubSession) -> RepositorySnapshotProvider:
    return RepositorySnapshotProvider(session, ArtifactCache(scratch), REPO, "gh-token")


def test_get_head_returns_commit_sha(scratch: Path) -> None:
    session = StubSession({
        BRANCH_URL: StubResponse(json_data={"name": "master", "commit": {"sha": SHA, "url": "x"}}),
    })

    assert _provider(scratch, session).get_head("master") == SHA

    _, _, kwargs = session.calls[0]
    assert kwargs["headers"]["Authorization"] == "token gh-token"


def test_get_head_rejects_non_json(scratch: Path) -> None:
    session = StubSession({BRANCH_URL: StubResponse(body=b"<html>rate limited</html>")})

    with pytest.raises(ApiError, match="not valid JSON"):
        _provider(scratch, session).get_head("master")


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "master"},
        {"commit": {}},
        {"commit": {"sha": "not-a-sha"}},
        ["unexpected", "list"],
    ],
)
def test_get_head_requires_commit_identifier(scratch: Path, payload) -> None:
    session = StubSession({BRANCH_URL: StubResponse(json_data=payload)})

    with pytest.raises(ApiError):
        _provider(scratch, session).get_head("master")


@pytest.mark.parametrize("status", [401, 404, 500])
def test_get_head_error_status(scratch: Path, status: int) -> None:
    session = StubSession({BRANCH_URL: StubResponse(status_code=status, json_data={})})

    with pytest.raises(ApiError):
        _provider(scratch, session).get_head("master")


def test_ensure_snapshot_follows_one_redirect(scratch: Path) -> None:
    session = StubSession(archive_routes(SHA))

    snapshot = _provider(scratch, session).ensure_snapshot(SHA)

    assert snapshot.sha == SHA
    assert snapshot.repo == REPO
    assert snapshot.path == scratch / f"repo_acme-infra_{SHA}" / f"acme-infra-{SHA[:7]}"
    assert (snapshot.path / "main.tf").is_file()
    assert session.urls() == [tarball_url(SHA), codeload_url(SHA)]
    assert session.calls[0][2]["allow_redirects"] is False


def test_ensure_snapshot_same_sha_is_a_cache_hit(scratch: Path) -> None:
    session = StubSession(archive_routes(SHA))
    provider = _provider(scratch, session)

    first = provider.ensure_snapshot(SHA)
    second = provider.ensure_snapshot(SHA)

    assert first == second
    assert len(session.calls) == 2


def test_new_sha_never_reuses_previous_snapshot(scratch: Path) -> None:
    session = StubSession({**archive_routes(SHA), **archive_routes(OTHER_SHA)})
    provider = _provider(scratch, session)

    first = provider.ensure_snapshot(SHA)
    before = sorted(p.name for p in first.path.iterdir())
    second = provider.ensure_snapshot(OTHER_SHA)

    assert second.path != first.path
    assert not second.path.is_relative_to(first.path.parent)
    assert sorted(p.name for p in first.path.iterdir()) == before


def test_unexpected_archive_layout(scratch: Path) -> None:
    body = make_tarball({"some-other-folder/main.tf": b""})
    session = StubSession(archive_routes(SHA, body=body))

    with pytest.raises(ArchiveLayoutError, match="some-other-folder"):
        _provider(scratch, session).ensure_snapshot(SHA)

    assert list(scratch.iterdir()) == []


def test_missing_redirect_is_a_download_error(scratch: Path) -> None:
    session = StubSession({tarball_url(SHA): StubResponse(status_code=200, body=b"")})

    with pytest.raises(DownloadError, match="redirect"):
        _provider(scratch, session).ensure_snapshot(SHA)


def test_asset_download_failure(scratch: Path) -> None:
    session = StubSession({
        tarball_url(SHA): StubResponse(status_code=302, headers={"Location": codeload_url(SHA)}),
        codeload_url(SHA): StubResponse(status_code=403),
    })

    with pytest.raises(DownloadError):
        _provider(scratch, session).ensure_snapshot(SHA)


def test_ensure_snapshot_rejects_non_sha(scratch: Path) -> None:
    session = StubSession()

    with pytest.raises(ApiError, match="Not a commit SHA"):
        _provider(scratch, session).ensure_snapshot("../../etc")

    assert session.calls == []
    assert list(scratch.iterdir()) == []
