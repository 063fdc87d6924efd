import json
import subprocess
import sys
from pathlib import Path

from cnvmerge.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "cnvmerge"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "cnvmerge consolidate" in cp.stdout
    assert "cnvmerge make-toy-data" in cp.stdout


def test_classify_command() -> None:
    cp = _run_cli(["classify", "--observed", "2", "--reference", "2", "--mcc", "2"])
    assert cp.returncode == 0
    assert cp.stdout.strip() == "LOH"

    cp = _run_cli(["classify", "--observed", "1"])
    assert cp.stdout.strip() == "LOSS"


def test_consolidate_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "out"
    cp = _run_cli(
        [
            "consolidate",
            "--segments",
            toy["segments_json"],
            "--config",
            toy["config_json"],
            "--outdir",
            str(outdir),
            "--dry-run",
        ]
    )
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert '"minimum_call_size": 5000' in cp.stdout
    assert not (outdir / "summary.json").exists()


def test_make_toy_data_and_consolidate(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0

    outdir = tmp_path / "out"
    cp = _run_cli(
        [
            "consolidate",
            "--segments",
            str(toy_dir / "segments.json"),
            "--excluded-bed",
            str(toy_dir / "excluded.bed.gz"),
            "--ploidy-bed",
            str(toy_dir / "ploidy.bed"),
            "--reference-fasta",
            str(toy_dir / "toy_ref.fa"),
            "--config",
            str(toy_dir / "config.json"),
            "--outdir",
            str(outdir),
        ]
    )
    assert cp.returncode == 0, cp.stderr
    assert (outdir / "report.html").exists()
    assert (outdir / "plots" / "coverage.png").exists()
    assert (outdir / "logs" / "consolidate.log").exists()

    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert summary["segments_in"] == 8
    assert summary["segments_out"] < summary["segments_in"]
    assert summary["excluded_regions"] == 1
    assert summary["config"]["qscore_method"] == "LogisticGermline"

    segments = json.loads((outdir / "segments.json").read_text(encoding="utf-8"))
    assert len(segments["segments"]) == len(segments["records"]) == summary["segments_out"]
    # The chrX haploid call sits on a haploid reference region.
    chrx = [r for r in segments["records"] if r["chrom"] == "chrX"]
    assert chrx[0]["cnv_type"] == "REF"
    assert chrx[0]["reference_copy_number"] == 1


def test_resume_skips_existing_run(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "out"
    args = ["consolidate", "--segments", toy["segments_json"], "--outdir", str(outdir)]
    assert _run_cli(args).returncode == 0
    cp = _run_cli(args + ["--resume", "-v"])
    assert cp.returncode == 0
    assert "Resume enabled" in cp.stderr


def test_unknown_config_key_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"min_call": 5}), encoding="utf-8")
    cp = _run_cli(
        [
            "consolidate",
            "--segments",
            toy["segments_json"],
            "--config",
            str(bad),
            "--outdir",
            str(tmp_path / "out"),
        ]
    )
    assert cp.returncode == 2
    assert "Unknown config keys" in cp.stderr


def test_unknown_chromosome_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    segs = tmp_path / "segments.json"
    segs.write_text(json.dumps([{"chrom": "chr9", "start": 0, "end": 1000, "counts": [10.0]}]), encoding="utf-8")
    cp = _run_cli(
        [
            "consolidate",
            "--segments",
            str(segs),
            "--reference-fasta",
            toy["ref_fa"],
            "--outdir",
            str(tmp_path / "out"),
        ]
    )
    assert cp.returncode == 2
    assert "Integrity check error" in cp.stderr


def test_score_command(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(["score", "--segments", toy["segments_json"], "--method", "BinCountLinearFit"])
    assert cp.returncode == 0
    lines = cp.stdout.strip().splitlines()
    assert lines[0].split("\t") == ["chromosome", "begin", "end", "bins", "qscore"]
    assert len(lines) == 9
    # chr1:0-100000 has 100 bins and saturates
    assert lines[1].split("\t")[-1] == "61"


def test_dry_run_rejects_invalid_segments(tmp_path: Path) -> None:
    segs = tmp_path / "segments.json"
    segs.write_text(json.dumps([{"chromosome": "chr1", "begin": 5, "end": 1, "counts": []}]), encoding="utf-8")
    outdir = tmp_path / "out"
    cp = _run_cli(["consolidate", "--segments", str(segs), "--outdir", str(outdir), "--dry-run"])
    assert cp.returncode == 2
    assert "Dry-run" not in cp.stdout
    assert "begin must be < end" in cp.stderr
    assert not outdir.exists()


def test_dry_run_rejects_unsorted_segments(tmp_path: Path) -> None:
    segs = tmp_path / "segments.json"
    segs.write_text(
        json.dumps(
            [
                {"chrom": "chr1", "start": 5000, "end": 6000, "counts": [10.0]},
                {"chrom": "chr1", "start": 0, "end": 1000, "counts": [10.0]},
            ]
        ),
        encoding="utf-8",
    )
    cp = _run_cli(["consolidate", "--segments", str(segs), "--outdir", str(tmp_path / "out"), "--dry-run"])
    assert cp.returncode == 2
    assert "not sorted" in cp.stderr


def test_dry_run_reports_inputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(
        [
            "consolidate",
            "--segments",
            toy["segments_json"],
            "--excluded-bed",
            toy["excluded_bed"],
            "--reference-fasta",
            toy["ref_fa"],
            "--outdir",
            str(tmp_path / "out"),
            "--dry-run",
        ]
    )
    assert cp.returncode == 0, cp.stderr
    assert "Segments: 8" in cp.stdout
    assert "Segment contig style: ucsc" in cp.stdout
    assert "Excluded BED contig style: ucsc" in cp.stdout


def test_score_command_with_predictors(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(["score", "--segments", toy["segments_json"], "--predictors"])
    assert cp.returncode == 0
    lines = cp.stdout.strip().splitlines()
    header = lines[0].split("\t")
    assert header[5:8] == ["BinCount", "LogBinCount", "BinMean"]
    row = lines[1].split("\t")
    assert len(row) == len(header)
    assert row[header.index("BinCount")] == "100"
