import subprocess
import sys
from collections import Counter
from pathlib import Path

import pandas as pd
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import core.merge
import core.pipeline
from core.errors import InputNotFoundError, InputStatus, MalformedPartitionRecordError, PartitionIOError
from core.partitions import PartitionWriter, list_partition_files
from core.records import FrequencyRecord
from core.pipeline import (
    check_input,
    digest_file,
    format_report,
    merge_partition_dir,
    run_pipeline,
    select_top_k,
    split_items,
)

REPO_ROOT = Path(__file__).resolve().parents[1]
PYTHON = sys.executable


def _run(args, check=True):
    return subprocess.run(
        [PYTHON] + args, cwd=REPO_ROOT, check=check, capture_output=True, text=True
    )


def _write_input(path, lines):
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


def _work_dirs(base):
    return sorted(p for p in base.iterdir() if p.is_dir() and p.name.startswith("topk_"))


def test_split_items_keeps_empty_segments():
    assert split_items("a||b\n") == ["a", "", "b"]
    assert split_items("  the cat | a dog |the cat\n") == ["the cat", "a dog", "the cat"]
    assert split_items("a|\n") == ["a", ""]
    assert split_items("\n") == [""]


def test_check_input(tmp_path):
    existing = _write_input(tmp_path / "in.txt", ["a"])
    assert check_input(existing) is InputStatus.OK
    assert check_input(tmp_path / "missing.txt") is InputStatus.NOT_FOUND
    assert check_input(tmp_path) is InputStatus.NOT_A_FILE


def test_end_to_end_example(tmp_path):
    input_file = _write_input(tmp_path / "sentences.txt", ["a|b|a", "b|c", "a"])
    result = run_pipeline(input_file, capacity=2)
    assert set(result.records) == {("a", 3), ("b", 2)}
    assert result.items_observed == 6
    assert result.work_dir is None
    assert _work_dirs(tmp_path) == []


def test_empty_segments_are_counted(tmp_path):
    input_file = _write_input(tmp_path / "sentences.txt", ["a||b"])
    result = run_pipeline(input_file, capacity=5)
    assert sorted(result.records) == [("", 1), ("a", 1), ("b", 1)]


def test_empty_input_gives_empty_result(tmp_path):
    input_file = tmp_path / "empty.txt"
    input_file.write_text("", encoding="utf-8")
    result = run_pipeline(input_file, capacity=3, keep_artifacts=True)
    assert result.records == []
    assert result.partitions == []
    assert result.merge_path is None
    assert list(result.work_dir.iterdir()) == []


def test_many_partitions_match_reference(tmp_path):
    lines = []
    reference = Counter()
    for i in range(300):
        items = [f"sentence {(i * j) % 37}" for j in range(1, 6)]
        reference.update(items)
        lines.append(" | ".join(items))
    input_file = _write_input(tmp_path / "sentences.txt", lines)

    result = run_pipeline(input_file, capacity=5, max_records=4, keep_artifacts=True)

    assert len(result.partitions) > 1
    merged = dict(
        (item, int(count))
        for item, _, count in (
            line.rstrip("\n").rpartition(";") for line in result.merge_path.read_text(encoding="utf-8").splitlines()
        )
    )
    assert merged == dict(reference)
    threshold = sorted(reference.values(), reverse=True)[4]
    assert all(record.count >= threshold for record in result.records)
    assert all(reference[record.item] == record.count for record in result.records)


def test_keep_artifacts_leaves_partitions(tmp_path):
    input_file = _write_input(tmp_path / "sentences.txt", ["x|y|z", "x"])
    work = tmp_path / "work"
    result = run_pipeline(input_file, capacity=1, max_records=1, keep_artifacts=True, work_dir=work)
    assert result.work_dir.parent == work
    assert all(p.exists() for p in result.partitions)
    assert result.merge_path.read_text(encoding="utf-8") == "x;2\ny;1\nz;1\n"
    assert result.records == [("x", 2)]


def test_missing_input_creates_nothing(tmp_path):
    with pytest.raises(InputNotFoundError) as excinfo:
        run_pipeline(tmp_path / "missing.txt", capacity=2)
    assert excinfo.value.status is InputStatus.NOT_FOUND
    assert _work_dirs(tmp_path) == []


def test_failure_leaves_partitions_for_diagnosis(tmp_path, monkeypatch):
    input_file = _write_input(tmp_path / "sentences.txt", ["a|b", "c"])

    def failing_select(*args, **kwargs):
        raise PartitionIOError(tmp_path / "merge", "write", "disk full")

    monkeypatch.setattr(core.pipeline, "select_top_k", failing_select)
    with pytest.raises(PartitionIOError):
        run_pipeline(input_file, capacity=2)
    (work_dir,) = _work_dirs(tmp_path)
    assert len(list_partition_files(work_dir)) == 1


def test_writer_failure_mid_digest_keeps_earlier_partitions(tmp_path, monkeypatch):
    input_file = _write_input(tmp_path / "sentences.txt", ["a|b|c|d|e"])
    original_next_path = PartitionWriter.next_path

    def next_path(writer):
        path = original_next_path(writer)
        if writer.written:
            # Second flush targets a directory that does not exist.
            return path.parent / "gone" / path.name
        return path

    monkeypatch.setattr(PartitionWriter, "next_path", next_path)
    with pytest.raises(PartitionIOError) as excinfo:
        run_pipeline(input_file, capacity=2, max_records=1)
    assert excinfo.value.operation == "write"
    (work_dir,) = _work_dirs(tmp_path)
    (kept,) = list_partition_files(work_dir)
    assert kept.read_text(encoding="utf-8") == "a;1\nb;1\n"


def test_unwritable_merge_output_leaves_no_cursor_open(tmp_path, monkeypatch):
    writer = PartitionWriter(tmp_path / "parts")
    paths = [writer.write({"a": 1, "b": 2}), writer.write({"a": 4})]
    opened = []
    real_cursor = core.merge.PartitionCursor

    def tracking_cursor(path):
        cursor = real_cursor(path)
        opened.append(cursor)
        return cursor

    monkeypatch.setattr(core.merge, "PartitionCursor", tracking_cursor)
    with pytest.raises(PartitionIOError):
        select_top_k(paths, 1, merge_output=tmp_path / "nodir" / "merge-1")
    assert all(cursor._file.closed for cursor in opened)

    assert select_top_k(paths, 1) == [("a", 5)]
    assert opened and all(cursor._file.closed for cursor in opened)


def test_merge_stage_without_merge_file(tmp_path):
    parts = tmp_path / "parts"
    PartitionWriter(parts).write({"x": 2, "y": 1})
    result = merge_partition_dir(parts, capacity=1, write_merge_file=False)
    assert result.records == [("x", 2)]
    assert result.merge_path is None
    assert [p.name.split("-")[0] for p in parts.iterdir()] == ["dump"]


def test_merge_stage_reproduces_full_run(tmp_path):
    input_file = _write_input(tmp_path / "sentences.txt", ["p|q|r|p", "q|p|s", "t|p"])
    digest = digest_file(input_file, tmp_path / "parts", max_records=2)
    assert digest.lines_read == 3
    assert digest.items_observed == 9

    merged = merge_partition_dir(tmp_path / "parts", capacity=2)
    full = run_pipeline(input_file, capacity=2, max_records=2)
    assert merged.records == full.records == [("p", 4), ("q", 2)]
    assert merged.items_observed is None
    assert merged.merge_path.exists()


def test_merge_stage_rejects_corrupt_partition(tmp_path):
    parts = tmp_path / "parts"
    parts.mkdir()
    (parts / "dump-1").write_text("a;1\nb\n", encoding="utf-8")
    with pytest.raises(MalformedPartitionRecordError):
        merge_partition_dir(parts, capacity=1)
    assert (parts / "dump-1").exists()


def test_format_report():
    report = format_report([FrequencyRecord("a", 3), FrequencyRecord("b", 2)], 2)
    assert report.splitlines()[0] == "2-most frequent sentences:"
    assert "Sentence: a | Frequency: 3" in report


def test_cli_writes_report(tmp_path):
    input_file = _write_input(tmp_path / "sentences.txt", ["a|b|a", "b|c", "a"])
    report = tmp_path / "out" / "top.tsv"
    proc = _run(["sentences_topk.py", str(input_file), "2", "--output_path", str(report)])
    assert "Sentence: a | Frequency: 3" in proc.stdout

    df = pd.read_csv(report, sep="\t", keep_default_na=False, dtype={"item": str})
    assert list(df.columns) == ["item", "count"]
    assert list(zip(df["item"], df["count"])) == [("a", 3), ("b", 2)]
    assert _work_dirs(tmp_path) == []


def test_cli_digest_then_merge(tmp_path):
    input_file = _write_input(tmp_path / "sentences.txt", ["a|b|a", "b|c", "a"])
    proc = _run(["sentences_topk.py", str(input_file), "2", "--stages", "digest", "-m", "1"])
    run_dir = Path(proc.stdout.strip().splitlines()[-1])
    assert run_dir.is_dir()
    assert len(list_partition_files(run_dir)) > 1

    proc = _run(["sentences_topk.py", "-", "2", "--stages", "merge", "--partition_dir", str(run_dir)])
    assert "Sentence: a | Frequency: 3" in proc.stdout
    assert "Sentence: b | Frequency: 2" in proc.stdout


def test_cli_missing_input_fails(tmp_path):
    proc = _run(["sentences_topk.py", str(tmp_path / "missing.txt"), "2"], check=False)
    assert proc.returncode == 1
    assert "not found" in proc.stderr


def test_cli_merge_without_merge_file(tmp_path):
    parts = tmp_path / "parts"
    PartitionWriter(parts).write({"a": 3, "b": 2})
    proc = _run(["sentences_topk.py", "-", "1", "--stages", "merge", "--partition_dir", str(parts), "--no_merge_file"])
    assert "Sentence: a | Frequency: 3" in proc.stdout
    assert not list(parts.glob("merge-*"))
