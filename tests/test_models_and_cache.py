from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest

from drift_monitor.archives import ArtifactCache, extract_tarball
from drift_monitor.errors import ExtractionError
from drift_monitor.models import METRIC_UNITS, Metric, MetricsRecord, MetricUnit, PlanStatus


def test_every_metric_has_a_unit() -> None:
    assert set(METRIC_UNITS) == set(Metric)
    assert METRIC_UNITS[Metric.SCRATCH_SPACE_BYTES] is MetricUnit.BYTES
    assert METRIC_UNITS[Metric.PLAN_STATUS] is MetricUnit.NONE


@pytest.mark.parametrize(
    "exit_code,status,value",
    [
        (0, PlanStatus.CLEAN, 0),
        (2, PlanStatus.CHANGES_PENDING, 2),
        (1, PlanStatus.ERROR, 1),
        (137, PlanStatus.ERROR, 1),
    ],
)
def test_plan_status_from_exit_code(exit_code: int, status: PlanStatus, value: int) -> None:
    assert PlanStatus.from_exit_code(exit_code) is status
    assert status.metric_value == value


def test_record_values_are_read_only() -> None:
    values = {Metric.PENDING_TOTAL: 3}
    record = MetricsRecord(repo="acme/infra", values=values)

    values[Metric.PENDING_TOTAL] = 99
    with pytest.raises(TypeError):
        record.values[Metric.PENDING_TOTAL] = 0  # type: ignore[index]

    assert record.values[Metric.PENDING_TOTAL] == 3


@pytest.mark.parametrize("key", ["", "a/b", ".staging-x", ".."])
def test_cache_rejects_unsafe_keys(tmp_path: Path, key: str) -> None:
    with pytest.raises(ValueError):
        ArtifactCache(tmp_path).path_for(key)


def test_publish_keeps_entry_published_by_another_writer(tmp_path: Path) -> None:
    cache = ArtifactCache(tmp_path)

    def racing_fill(staging: Path) -> None:
        (staging / "content").write_text("mine")
        winner = tmp_path / "entry"
        winner.mkdir()
        (winner / "content").write_text("theirs")
        (winner / "other").write_text("x")

    entry = cache.publish("entry", racing_fill)

    assert entry.exists
    assert (entry.path / "content").read_text() == "theirs"
    assert [p.name for p in tmp_path.iterdir()] == ["entry"]


def test_failed_fill_leaves_no_entry(tmp_path: Path) -> None:
    cache = ArtifactCache(tmp_path)

    def failing_fill(staging: Path) -> None:
        (staging / "partial").write_text("x")
        raise ExtractionError("truncated")

    with pytest.raises(ExtractionError):
        cache.publish("entry", failing_fill)

    assert not cache.lookup("entry").exists
    assert list(tmp_path.iterdir()) == []


def test_tarball_path_traversal_is_rejected(tmp_path: Path) -> None:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        info = tarfile.TarInfo("../escape.txt")
        info.size = 1
        tar.addfile(info, io.BytesIO(b"x"))
    archive = tmp_path / "evil.tar.gz"
    archive.write_bytes(buffer.getvalue())
    destination = tmp_path / "out"
    destination.mkdir()

    with pytest.raises(ExtractionError):
        extract_tarball(archive, destination)

    assert not (tmp_path / "escape.txt").exists()
