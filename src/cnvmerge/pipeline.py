"""End-to-end consolidation of called segments: merge, score, filter, classify."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from tqdm import tqdm

from .config import MergeConfig
from .coverage import segments_by_chromosome
from .merge import check_sorted, merge_by_span, merge_using_excluded_intervals
from .models import CnvType, Segment
from .qscore import assign_quality_scores
from .regions import ExcludedRegionIndex, ReferencePloidy, reference_copy_number
from .utils import round_half_away

logger = logging.getLogger(__name__)

PASS = "PASS"


def quality_filter_tag(threshold: int) -> str:
    return f"q{threshold}"


def length_filter_tag(minimum_length: int) -> str:
    return f"L{minimum_length / 1000:g}kb"


def apply_quality_filters(
    segments: Iterable[Segment],
    *,
    quality_threshold: int,
    minimum_length: int,
) -> Dict[str, int]:
    """Set ``filter`` on each segment and return how many segments each filter hit."""
    hits = {PASS: 0, quality_filter_tag(quality_threshold): 0, length_filter_tag(minimum_length): 0}
    for seg in segments:
        failed: List[str] = []
        if seg.qscore < quality_threshold:
            failed.append(quality_filter_tag(quality_threshold))
        if seg.length < minimum_length:
            failed.append(length_filter_tag(minimum_length))
        for tag in failed:
            hits[tag] += 1
        if not failed:
            hits[PASS] += 1
        seg.filter = ";".join(failed) if failed else PASS
    return hits


def describe_segment(segment: Segment, reference_cn: int = 2) -> Dict[str, Any]:
    """Fields a VCF-style emitter needs for one consolidated segment, in column order."""
    cnv_type = segment.cnv_type(reference_cn)
    alt = cnv_type.alt_id
    symbolic = alt.startswith("<") and alt.endswith(">")
    # Symbolic alleles need the padding base, so POS points to the base before the event.
    pos = segment.begin if symbolic else segment.begin + 1

    info: Dict[str, Any] = {}
    if cnv_type is not CnvType.REFERENCE:
        info["SVTYPE"] = cnv_type.sv_type
    info["END"] = segment.end
    if cnv_type is not CnvType.REFERENCE:
        info["CNVLEN"] = segment.length

    fmt: Dict[str, Any] = {
        "RC": round_half_away(segment.mean_count),
        "BC": segment.bin_count,
        "CN": segment.copy_number,
    }
    if segment.major_chromosome_count is not None:
        fmt["MCC"] = segment.major_chromosome_count

    return {
        "chrom": segment.chromosome,
        "pos": pos,
        "id": f"cnvmerge:{cnv_type.vcf_id}:{segment.chromosome}:{segment.begin + 1}-{segment.end}",
        "ref": "N",
        "alt": alt,
        "qual": segment.qscore,
        "filter": segment.filter,
        "info": info,
        "format": fmt,
        "cnv_type": cnv_type.vcf_id,
        "reference_copy_number": reference_cn,
    }


@dataclass
class ConsolidationResult:
    segments: List[Segment]
    stats: Dict[str, Any] = field(default_factory=dict)


def _consolidate_chromosome(
    segments: Sequence[Segment],
    config: MergeConfig,
    excluded: Optional[ExcludedRegionIndex],
) -> List[Segment]:
    merged = merge_using_excluded_intervals(segments, config.minimum_call_size, excluded)
    if config.use_span_merge:
        merged = merge_by_span(merged, config.minimum_call_size, config.maximum_merge_span)
    return merged


def consolidate_segments(
    segments: Sequence[Segment],
    config: MergeConfig,
    *,
    excluded: Optional[ExcludedRegionIndex] = None,
    ploidy: Optional[ReferencePloidy] = None,
    progress: bool = False,
) -> ConsolidationResult:
    """Merge, score, filter and classify a sorted list of called segments.

    Chromosomes are processed independently (merging never crosses a chromosome
    boundary) and concatenated in input order.
    """
    t0 = time.time()
    check_sorted(segments)

    if config.score_before_merge:
        assign_quality_scores(segments, config.qscore_method)

    shards = segments_by_chromosome(segments)
    it: Iterable[str] = shards
    if progress:
        it = tqdm(it, unit="chrom", desc="Merging segments")

    merged: List[Segment] = []
    per_chromosome: Dict[str, Dict[str, int]] = {}
    for chrom in it:
        shard = shards[chrom]
        out = _consolidate_chromosome(shard, config, excluded)
        logger.debug("%s: %d -> %d segments", chrom, len(shard), len(out))
        per_chromosome[chrom] = {"segments_in": len(shard), "segments_out": len(out)}
        merged.extend(out)

    if config.rescore_after_merge:
        assign_quality_scores(merged, config.qscore_method)

    filter_hits = apply_quality_filters(
        merged,
        quality_threshold=config.quality_filter_threshold,
        minimum_length=config.minimum_pass_length,
    )

    cnv_type_counts = {t.vcf_id: 0 for t in CnvType}
    for seg in merged:
        cnv_type_counts[seg.cnv_type(reference_copy_number(ploidy, seg)).vcf_id] += 1

    stats: Dict[str, Any] = {
        "segments_in": len(segments),
        "segments_out": len(merged),
        "bins_total": sum(s.bin_count for s in merged),
        "per_chromosome": per_chromosome,
        "filters": filter_hits,
        "cnv_types": cnv_type_counts,
        "excluded_regions": excluded.region_count() if excluded is not None else 0,
        "config": config.to_jsonable(),
        "runtime_seconds": float(time.time() - t0),
    }
    logger.info(
        "Consolidated %d segments into %d (%d PASS)",
        len(segments),
        len(merged),
        filter_hits[PASS],
    )
    return ConsolidationResult(segments=merged, stats=stats)
