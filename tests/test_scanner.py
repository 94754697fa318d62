"""
Tests for bmsindex.core.scanner.

These tests verify:
- Extension filtering while walking source folders
- Per-file failures are isolated as ScanIssues
- The worker pool never exceeds max_workers
- Cancellation and fatal sink errors stop the pipeline
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
from pathlib import Path

import pytest

from bmsindex.core.chart import ChartRecord
from bmsindex.core.scanner import (
    ScanConfig,
    ScanDispatcher,
    ScanIssue,
    iter_chart_files,
    scan_chart_folders,
)
from tests.helpers import write_chart


def _fake_parse(path: Path) -> ChartRecord:
    return ChartRecord(path=path, hash=path.name.ljust(64, "0"), title=path.stem)


def _make_tree(root: Path, count: int, per_folder: int = 5) -> list[Path]:
    paths = []
    for i in range(count):
        p = root / f"song{i // per_folder}" / f"{i}.bms"
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(b"#TITLE x\n")
        paths.append(p)
    return paths


def _deny_listing(monkeypatch: pytest.MonkeyPatch, folder_name: str) -> None:
    """Make os.walk fail to list every folder called `folder_name`, as an unreadable one would."""
    real_walk = os.walk

    def walk(top, topdown=True, onerror=None, followlinks=False):
        for dirpath, dirnames, filenames in real_walk(top, topdown, None, followlinks):
            if Path(dirpath).name == folder_name:
                dirnames[:] = []
                if onerror is not None:
                    onerror(PermissionError(13, "Permission denied", dirpath))
                continue
            yield dirpath, dirnames, filenames

    monkeypatch.setattr(os, "walk", walk)


class TestScanConfig:
    def test_extensions_are_lowercased(self) -> None:
        config = ScanConfig(roots=(Path("/x"),), extensions=frozenset({".BMS", ".Bme"}))
        assert config.extensions == frozenset({".bms", ".bme"})

    def test_accepts_is_case_insensitive(self) -> None:
        config = ScanConfig(roots=(Path("/x"),), extensions=frozenset({".bms"}))
        assert config.accepts(Path("a.bms"))
        assert config.accepts(Path("A.BMS"))
        assert not config.accepts(Path("a.bmson"))
        assert not config.accepts(Path("a.wav"))
        assert not config.accepts(Path("bms"))

    def test_roots_become_paths(self) -> None:
        config = ScanConfig(roots=("/x", "/y"))  # type: ignore[arg-type]
        assert config.roots == (Path("/x"), Path("/y"))


class TestIterChartFiles:
    async def test_filters_by_extension(self, tmp_path: Path) -> None:
        write_chart(tmp_path / "s1" / "a.bms")
        write_chart(tmp_path / "s1" / "b.BME")
        write_chart(tmp_path / "s2" / "deep" / "c.pms")
        (tmp_path / "s1" / "bgm.ogg").write_bytes(b"OggS")
        (tmp_path / "s1" / "readme.txt").write_text("hi")

        config = ScanConfig(roots=(tmp_path,), extensions=frozenset({".bms", ".bme", ".pms"}))
        found = sorted([p.name async for p in iter_chart_files(tmp_path, config)])
        assert found == ["a.bms", "b.BME", "c.pms"]

    async def test_missing_root(self, tmp_path: Path) -> None:
        config = ScanConfig(roots=(tmp_path,))
        with pytest.raises(FileNotFoundError):
            async for _ in iter_chart_files(tmp_path / "missing", config):
                pass

    async def test_root_is_file(self, tmp_path: Path) -> None:
        chart = write_chart(tmp_path / "a.bms")
        config = ScanConfig(roots=(tmp_path,))
        with pytest.raises(NotADirectoryError):
            async for _ in iter_chart_files(chart, config):
                pass

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    async def test_symlinked_files_are_included(self, tmp_path: Path) -> None:
        real = write_chart(tmp_path / "real" / "a.bms")
        (tmp_path / "real" / "link.bms").symlink_to(real)

        for follow in (False, True):
            config = ScanConfig(roots=(tmp_path,), follow_symlinks=follow)
            found = sorted([p.name async for p in iter_chart_files(tmp_path, config)])
            assert found == ["a.bms", "link.bms"]

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    async def test_symlinked_folders_need_follow(self, tmp_path: Path) -> None:
        write_chart(tmp_path / "real" / "a.bms")
        (tmp_path / "linked").symlink_to(tmp_path / "real", target_is_directory=True)

        config = ScanConfig(roots=(tmp_path,))
        found = [p.relative_to(tmp_path) async for p in iter_chart_files(tmp_path, config)]
        assert found == [Path("real", "a.bms")]

        following = ScanConfig(roots=(tmp_path,), follow_symlinks=True)
        found = sorted([p.relative_to(tmp_path) async for p in iter_chart_files(tmp_path, following)])
        assert found == [Path("linked", "a.bms"), Path("real", "a.bms")]

    async def test_unreadable_folder_is_reported(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _deny_listing(monkeypatch, "locked")
        write_chart(tmp_path / "locked" / "hidden.bms")
        write_chart(tmp_path / "open" / "a.bms")
        write_chart(tmp_path / "open" / "b.bms")

        issues: list[ScanIssue] = []
        config = ScanConfig(roots=(tmp_path,))
        found = sorted([p.name async for p in iter_chart_files(tmp_path, config, issues)])

        assert found == ["a.bms", "b.bms"]
        assert len(issues) == 1
        assert issues[0].kind == "walk"
        assert issues[0].path == tmp_path / "locked"
        assert "PermissionError" in issues[0].message


class TestScanDispatcher:
    """Tests for the producer / worker / aggregator pipeline."""

    async def test_all_files_reach_the_sink(self, tmp_path: Path) -> None:
        expected = _make_tree(tmp_path, 57)
        seen: list[ChartRecord] = []

        async def on_record(record: ChartRecord) -> None:
            seen.append(record)

        config = ScanConfig(roots=(tmp_path,), max_workers=4)
        summary = await ScanDispatcher(config, on_record=on_record, parser=_fake_parse).run()

        assert summary.dispatched == 57
        assert summary.parsed == 57
        assert summary.issues == []
        assert not summary.cancelled
        assert sorted(r.path for r in seen) == sorted(expected)

    async def test_multiple_roots(self, tmp_path: Path) -> None:
        _make_tree(tmp_path / "a", 3)
        _make_tree(tmp_path / "b", 4)

        records, issues = await scan_chart_folders([tmp_path / "a", tmp_path / "b"])
        assert len(records) == 7
        assert issues == []
        assert [r.path for r in records] == sorted(
            (r.path for r in records), key=lambda p: str(p).lower()
        )

    async def test_parse_failure_is_isolated(self, tmp_path: Path) -> None:
        paths = _make_tree(tmp_path, 10)
        bad = paths[3]

        def flaky(path: Path) -> ChartRecord:
            if path == bad:
                raise ValueError("corrupt chart")
            return _fake_parse(path)

        records: list[ChartRecord] = []
        issues: list[ScanIssue] = []

        async def on_record(record: ChartRecord) -> None:
            records.append(record)

        async def on_issue(issue: ScanIssue) -> None:
            issues.append(issue)

        config = ScanConfig(roots=(tmp_path,), max_workers=3)
        summary = await ScanDispatcher(
            config, on_record=on_record, on_issue=on_issue, parser=flaky
        ).run()

        assert len(records) == 9
        assert len(issues) == 1
        assert issues[0].path == bad
        assert issues[0].kind == "parse"
        assert "corrupt chart" in issues[0].message
        assert summary.issues == issues

    async def test_unreadable_folder_does_not_stop_siblings(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _deny_listing(monkeypatch, "song1")
        paths = _make_tree(tmp_path, 15)
        readable = [p for p in paths if p.parent.name != "song1"]

        records: list[ChartRecord] = []
        issues: list[ScanIssue] = []

        async def on_record(record: ChartRecord) -> None:
            records.append(record)

        async def on_issue(issue: ScanIssue) -> None:
            issues.append(issue)

        config = ScanConfig(roots=(tmp_path,), max_workers=3)
        summary = await ScanDispatcher(
            config, on_record=on_record, on_issue=on_issue, parser=_fake_parse
        ).run()

        assert sorted(r.path for r in records) == sorted(readable)
        assert summary.dispatched == 10
        assert [(i.kind, i.path) for i in issues] == [("walk", tmp_path / "song1")]
        assert summary.issues == issues

    async def test_worker_pool_is_bounded(self, tmp_path: Path) -> None:
        _make_tree(tmp_path, 40)
        lock = threading.Lock()
        active = 0
        peak = 0

        def slow_parse(path: Path) -> ChartRecord:
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.005)
            with lock:
                active -= 1
            return _fake_parse(path)

        async def on_record(record: ChartRecord) -> None:
            pass

        config = ScanConfig(roots=(tmp_path,), max_workers=3)
        summary = await ScanDispatcher(config, on_record=on_record, parser=slow_parse).run()

        assert summary.parsed == 40
        assert 1 <= peak <= 3

    async def test_cancel_stops_early(self, tmp_path: Path) -> None:
        _make_tree(tmp_path, 300)
        cancel = asyncio.Event()

        async def on_record(record: ChartRecord) -> None:
            cancel.set()

        config = ScanConfig(roots=(tmp_path,), max_workers=2)
        dispatcher = ScanDispatcher(
            config, on_record=on_record, parser=_fake_parse, cancel_event=cancel
        )
        summary = await dispatcher.run()

        assert summary.cancelled
        assert dispatcher.cancelled
        assert 1 <= summary.parsed < 300
        assert summary.dispatched < 300

    async def test_sink_error_is_fatal(self, tmp_path: Path) -> None:
        _make_tree(tmp_path, 50)

        async def on_record(record: ChartRecord) -> None:
            raise RuntimeError("store is gone")

        config = ScanConfig(roots=(tmp_path,), max_workers=2)
        dispatcher = ScanDispatcher(config, on_record=on_record, parser=_fake_parse)
        with pytest.raises(RuntimeError, match="store is gone"):
            await dispatcher.run()
        assert dispatcher.cancelled

    async def test_rejects_zero_workers(self, tmp_path: Path) -> None:
        async def on_record(record: ChartRecord) -> None:
            pass

        with pytest.raises(ValueError):
            ScanDispatcher(ScanConfig(roots=(tmp_path,), max_workers=0), on_record=on_record)
