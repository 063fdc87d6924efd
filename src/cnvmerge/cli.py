from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pysam

from . import __version__
from .config import MergeConfig, load_config
from .contigs import check_chromosome_names, detect_contig_style, harmonize_excluded_index
from .coverage import coverage_points, expected_count
from .merge import check_sorted
from .models import classify_cnv
from .pipeline import consolidate_segments, describe_segment
from .plotting import (
    plot_cnv_type_counts,
    plot_coverage_points,
    plot_qscore_hist,
    plot_segment_length_hist,
)
from .qscore import QScoreMethod, QScorePredictor, compute_qscore, parse_qscore_method, qscore_predictors
from .regions import load_excluded_regions, load_reference_ploidy, reference_copy_number
from .report import render_report
from .segment_io import load_segments_json, write_segments_json
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None and log_path.exists():
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _fasta_contigs(fasta_path: str) -> List[Tuple[str, int]]:
    with pysam.FastaFile(fasta_path) as fa:
        return list(zip(fa.references, fa.lengths))


_QSCORE_CHOICES = [m.value for m in QScoreMethod]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cnvmerge",
        description=(
            "cnvmerge: consolidate segmented copy-number calls into final CNV intervals "
            "with calibrated q-scores."
        ),
    )
    p.add_argument("--version", action="version", version=f"cnvmerge {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, segment list and BEDs for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")

    # -----------------
    # consolidate
    # -----------------
    c = sub.add_parser(
        "consolidate",
        help="Merge called segments, assign q-scores and filters, and write a report.",
    )
    c.add_argument(
        "--segments",
        required=True,
        type=_path_exists,
        help="Segments JSON (.json/.json.gz), sorted by chromosome and position.",
    )
    c.add_argument("--outdir", required=True, help="Output directory.")
    c.add_argument("--config", type=_path_exists, default=None, help="JSON file with run parameters.")
    c.add_argument(
        "--excluded-bed",
        type=_path_exists,
        default=None,
        help="BED (.bed/.bed.gz) of regions segments may not be merged across.",
    )
    c.add_argument(
        "--ploidy-bed",
        type=_path_exists,
        default=None,
        help="BED with reference ploidy in column 4 (e.g. chrX 0 156040895 1). Default: diploid.",
    )
    c.add_argument(
        "--reference-fasta",
        type=_path_exists,
        default=None,
        help="Indexed reference FASTA; enables contig checks and the coverage plot.",
    )

    # Merge parameters (override --config)
    c.add_argument("--minimum-call-size", type=int, default=None, help="Segments shorter than this are absorbed.")
    c.add_argument(
        "--maximum-merge-span",
        type=int,
        default=None,
        help="Largest gap (bp) bridged by the span-limited merge pass.",
    )
    c.add_argument(
        "--span-merge",
        action="store_true",
        default=None,
        help="Run the span-limited merge pass after the exclusion-aware pass.",
    )
    c.add_argument("--qscore-method", choices=_QSCORE_CHOICES, default=None, help="Q-score model.")
    c.add_argument(
        "--score-before-merge",
        action="store_true",
        default=None,
        help="Recompute q-scores before merging (when the input has none).",
    )
    c.add_argument("--quality-threshold", type=int, default=None, help="QUAL below => FILTER q<threshold>.")
    c.add_argument(
        "--min-pass-length",
        type=int,
        default=None,
        help="Segments shorter than this (bp) get a length FILTER.",
    )

    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    c.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # score
    # -----------------
    s = sub.add_parser("score", help="Print the q-score of every segment in a segments JSON.")
    s.add_argument("--segments", required=True, type=_path_exists, help="Segments JSON.")
    s.add_argument("--method", choices=_QSCORE_CHOICES, default=QScoreMethod.LOGISTIC.value, help="Q-score model.")
    s.add_argument(
        "--predictors",
        action="store_true",
        help="Also print the model inputs (BinCount, ModelDistance, ...) for each segment.",
    )
    s.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # classify
    # -----------------
    k = sub.add_parser("classify", help="Classify a copy-number call (REF/GAIN/LOSS/LOH).")
    k.add_argument("--observed", required=True, type=int, help="Called copy number.")
    k.add_argument("--reference", type=int, default=2, help="Reference copy number (default 2).")
    k.add_argument("--mcc", type=int, default=None, help="Major chromosome count, if known.")

    return p


def cmd_quickstart() -> int:
    print(
        """cnvmerge quickstart

1) Try it on toy data:
   cnvmerge make-toy-data --outdir toy
   cnvmerge consolidate --segments toy/segments.json --excluded-bed toy/excluded.bed.gz \\
       --ploidy-bed toy/ploidy.bed --reference-fasta toy/toy_ref.fa --config toy/config.json --outdir out

2) Germline calls, 10 kb minimum call size, exclusion-aware merge only:
   cnvmerge consolidate --segments calls.json --excluded-bed filter13.bed \\
       --minimum-call-size 10000 --qscore-method LogisticGermline --outdir out

3) Additionally bridge gaps up to 10 kb between equal calls:
   cnvmerge consolidate --segments calls.json --span-merge --maximum-merge-span 10000 --outdir out
"""
    )
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    summary = make_toy_data(outdir=args.outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _resolve_config(args: argparse.Namespace) -> MergeConfig:
    config = load_config(args.config) if args.config else MergeConfig()
    return config.with_overrides(
        minimum_call_size=args.minimum_call_size,
        maximum_merge_span=args.maximum_merge_span,
        use_span_merge=args.span_merge,
        qscore_method=args.qscore_method,
        score_before_merge=args.score_before_merge,
        quality_filter_threshold=args.quality_threshold,
        minimum_pass_length=args.min_pass_length,
    )


def cmd_consolidate(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "consolidate.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("cnvmerge")
    logger.info("cnvmerge %s", __version__)

    try:
        config = _resolve_config(args)

        segments = load_segments_json(args.segments)
        check_sorted(segments)
        segment_style = detect_contig_style(s.chromosome for s in segments)

        contigs: Optional[List[Tuple[str, int]]] = None
        if args.reference_fasta:
            contigs = _fasta_contigs(args.reference_fasta)
            check_chromosome_names([name for name, _ in contigs], segments)

        excluded = None
        excluded_style = None
        if args.excluded_bed:
            excluded = load_excluded_regions(args.excluded_bed)
            excluded_style = detect_contig_style(excluded.chromosomes())
            excluded = harmonize_excluded_index(excluded, [s.chromosome for s in segments])

        ploidy = load_reference_ploidy(args.ploidy_bed) if args.ploidy_bed else None

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Segments: {len(segments)}")
            print(f"Segment contig style: {segment_style}")
            if excluded_style is not None:
                print(f"Excluded BED contig style: {excluded_style}")
            print(f"Settings: {json.dumps(config.to_jsonable(), sort_keys=True)}")
            print("Planned outputs:")
            print(f"  report.html -> {outdir / 'report.html'}")
            print(f"  segments.json -> {outdir / 'segments.json'}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(outdir / "report.html"))
            return 0

        result = consolidate_segments(
            segments,
            config,
            excluded=excluded,
            ploidy=ploidy,
            progress=True,
        )

        records = [describe_segment(s, reference_copy_number(ploidy, s)) for s in result.segments]
        write_segments_json(outdir / "segments.json", result.segments, records=records)

        summary = dict(result.stats)
        summary["inputs"] = {
            "segments": str(args.segments),
            "excluded_bed": args.excluded_bed,
            "ploidy_bed": args.ploidy_bed,
            "reference_fasta": args.reference_fasta,
        }
        summary["version"] = __version__
        write_json(outdir / "summary.json", summary)

        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)

        cnv_types_png = plots_dir / "cnv_types.png"
        qscore_png = plots_dir / "qscore_hist.png"
        length_png = plots_dir / "length_hist.png"

        plot_cnv_type_counts(cnv_type_counts=result.stats["cnv_types"], out_png=cnv_types_png)
        plot_qscore_hist(qscores=[s.qscore for s in result.segments], out_png=qscore_png)
        plot_segment_length_hist(lengths=[s.length for s in result.segments], out_png=length_png)

        plots_rel = {
            "cnv_types": str(Path("plots") / cnv_types_png.name),
            "qscore_hist": str(Path("plots") / qscore_png.name),
            "length_hist": str(Path("plots") / length_png.name),
        }

        if contigs is not None and result.segments:
            normal_coverage = expected_count(result.segments)
            if normal_coverage > 0:
                points = coverage_points(
                    result.segments,
                    contigs,
                    normal_coverage,
                    reference_ploidy=ploidy,
                )
                coverage_png = plots_dir / "coverage.png"
                plot_coverage_points(points=points, out_png=coverage_png)
                plots_rel["coverage"] = str(Path("plots") / coverage_png.name)
            else:
                logger.warning("No autosomal coverage found; skipping coverage plot.")

        report_path = render_report(
            outdir=outdir,
            version=__version__,
            stats=result.stats,
            records=records,
            segments_path=str(args.segments),
            excluded_path=args.excluded_bed,
            ploidy_path=args.ploidy_bed,
            plots=plots_rel,
        )

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_score(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose)
    try:
        method = parse_qscore_method(args.method)
        segments = load_segments_json(args.segments)
        header = ["chromosome", "begin", "end", "bins", "qscore"]
        if args.predictors:
            header.extend(p.value for p in QScorePredictor)
        print("\t".join(header))
        for seg in segments:
            row = [seg.chromosome, seg.begin, seg.end, seg.bin_count, compute_qscore(seg, method)]
            if args.predictors:
                values = qscore_predictors(seg)
                row.extend(f"{values[p.value]:.6g}" for p in QScorePredictor)
            print("\t".join(str(x) for x in row))
        return 0
    except Exception as e:
        return _handle_error(e)


def cmd_classify(args: argparse.Namespace) -> int:
    print(classify_cnv(args.observed, args.reference, args.mcc).vcf_id)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "consolidate":
        return cmd_consolidate(args)
    if args.cmd == "score":
        return cmd_score(args)
    if args.cmd == "classify":
        return cmd_classify(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
