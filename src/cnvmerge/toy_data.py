from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from .models import Segment
from .segment_io import write_segments_json
from .utils import ensure_outdir, write_json

_BIN_SIZE = 1000
_CONTIGS: List[Tuple[str, int]] = [("chr1", 400_000), ("chrX", 200_000)]

# (chrom, begin, end, copy_number, major_chromosome_count, qscore)
_TOY_SEGMENTS: List[Tuple[str, int, int, int, Optional[int], float]] = [
    ("chr1", 0, 100_000, 2, 1, 30.0),
    ("chr1", 100_000, 103_000, 3, None, 5.0),
    ("chr1", 103_000, 200_000, 2, 1, 25.0),
    ("chr1", 200_000, 202_000, 2, None, 4.0),
    ("chr1", 202_000, 300_000, 1, 1, 40.0),
    ("chr1", 300_000, 400_000, 1, 1, 35.0),
    ("chrX", 0, 150_000, 1, 1, 45.0),
    ("chrX", 150_000, 200_000, 2, 2, 20.0),
]

_EXCLUDED: List[Tuple[str, int, int]] = [("chr1", 199_000, 200_000)]
_PLOIDY: List[Tuple[str, int, int, int]] = [("chrX", 0, 150_000, 1)]


def _write_fasta(path: Path, contigs: List[Tuple[str, int]]) -> None:
    lines: List[str] = []
    for contig, length in contigs:
        seq = ("ACGT" * (length // 4 + 1))[:length]
        lines.append(f">{contig}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _write_bed_gz(path: Path, rows: List[Tuple]) -> Path:
    bed = path.with_suffix("")  # strip .gz
    bed.write_text("".join("\t".join(str(x) for x in row) + "\n" for row in rows), encoding="utf-8")
    pysam.tabix_compress(str(bed), str(path), force=True)
    pysam.tabix_index(str(path), preset="bed", force=True)
    return path


def _make_segment(
    rng: random.Random,
    chrom: str,
    begin: int,
    end: int,
    copy_number: int,
    mcc: Optional[int],
    qscore: float,
) -> Segment:
    n_bins = (end - begin) // _BIN_SIZE
    depth = 50.0 * copy_number / 2.0
    counts = [max(0.0, rng.gauss(depth, 3.0)) for _ in range(n_bins)]
    n_snps = n_bins // 4
    if mcc is not None and copy_number > 0:
        af = mcc / float(copy_number)
    else:
        af = 0.5
    vfs = [min(1.0, max(0.0, rng.gauss(af, 0.05))) for _ in range(n_snps)]
    return Segment(
        chromosome=chrom,
        begin=begin,
        end=end,
        counts=counts,
        variant_frequencies=vfs,
        variant_total_coverage=[int(depth) for _ in range(n_snps)],
        copy_number=copy_number,
        major_chromosome_count=mcc,
        qscore=qscore,
        model_distance=rng.uniform(0.001, 0.02),
        runner_up_model_distance=rng.uniform(0.03, 0.1),
    )


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny reference, segment list, excluded-region and ploidy BEDs for demos/tests.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - segments.json
    - excluded.bed.gz (+ .tbi)
    - ploidy.bed
    - config.json

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(7)

    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, _CONTIGS)
    pysam.faidx(str(ref_fa))

    segments = [_make_segment(rng, *row) for row in _TOY_SEGMENTS]
    segments_json = outdir_p / "segments.json"
    write_segments_json(segments_json, segments)

    excluded_bed = _write_bed_gz(outdir_p / "excluded.bed.gz", list(_EXCLUDED))

    ploidy_bed = outdir_p / "ploidy.bed"
    ploidy_bed.write_text("".join("\t".join(str(x) for x in row) + "\n" for row in _PLOIDY), encoding="utf-8")

    config_json = outdir_p / "config.json"
    write_json(
        config_json,
        {
            "minimum_call_size": 5000,
            "qscore_method": "LogisticGermline",
            "quality_filter_threshold": 10,
        },
    )

    summary = {
        "ref_fa": str(ref_fa),
        "segments_json": str(segments_json),
        "excluded_bed": str(excluded_bed),
        "ploidy_bed": str(ploidy_bed),
        "config_json": str(config_json),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
