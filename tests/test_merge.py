import pytest

from cnvmerge.merge import (
    ExcludedIntervalPolicy,
    MergePolicy,
    SpanPolicy,
    check_sorted,
    merge_by_span,
    merge_segments,
    merge_using_excluded_intervals,
)
from cnvmerge.models import GenomicInterval, Segment
from cnvmerge.regions import build_excluded_index


def make_seg(chrom: str, begin: int, end: int, cn: int, q: float, nbins: int = 0) -> Segment:
    n = nbins or max(1, (end - begin) // 100)
    return Segment(
        chromosome=chrom,
        begin=begin,
        end=end,
        counts=[10.0] * n,
        copy_number=cn,
        qscore=q,
    )


def spans(segments):
    return [(s.chromosome, s.begin, s.end) for s in segments]


def test_empty_input_returns_empty_list():
    assert merge_using_excluded_intervals([], 1000, None) == []
    assert merge_by_span([], 1000, 500) == []


def test_small_segment_joins_higher_quality_neighbor():
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 1000, 1100, 3, 5),
        make_seg("chr1", 1100, 2000, 1, 20),
    ]
    out = merge_using_excluded_intervals(segs, 500, None)
    assert spans(out) == [("chr1", 0, 1000), ("chr1", 1000, 2000)]
    assert out[1].copy_number == 1


def test_tie_goes_to_backward_neighbor():
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 1000, 1100, 3, 5),
        make_seg("chr1", 1100, 2000, 1, 10),
    ]
    out = merge_using_excluded_intervals(segs, 500, None)
    assert spans(out) == [("chr1", 0, 1100), ("chr1", 1100, 2000)]


def test_forward_neighbor_absorbs_run_of_small_segments():
    segs = [
        make_seg("chr1", 0, 1000, 2, 5),
        make_seg("chr1", 1000, 1100, 3, 1),
        make_seg("chr1", 1100, 1200, 3, 1),
        make_seg("chr1", 1200, 2000, 1, 30),
    ]
    out = merge_using_excluded_intervals(segs, 500, None)
    assert spans(out) == [("chr1", 0, 1000), ("chr1", 1000, 2000)]
    assert out[1].bin_count == 10


def test_excluded_region_blocks_forward_neighbor():
    excluded = build_excluded_index([GenomicInterval("chr1", 1100, 1101)])
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 1000, 1100, 3, 5),
        make_seg("chr1", 1100, 2000, 1, 20),
    ]
    out = merge_using_excluded_intervals(segs, 500, excluded)
    assert spans(out) == [("chr1", 0, 1100), ("chr1", 1100, 2000)]


def test_zero_quality_neighbor_only_accepted_by_span_policy():
    def fresh():
        return [
            make_seg("chr1", 0, 1000, 2, 0),
            make_seg("chr1", 1000, 1100, 3, 0),
            make_seg("chr1", 1100, 2000, 1, 0),
        ]

    by_exclusion = merge_using_excluded_intervals(fresh(), 500, None)
    assert len(by_exclusion) == 3

    by_span = merge_by_span(fresh(), 500, 1000)
    assert spans(by_span) == [("chr1", 0, 1100), ("chr1", 1100, 2000)]


def test_span_policy_rejects_distant_neighbor():
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 1000, 1100, 3, 0),
        make_seg("chr1", 5000, 6000, 1, 50),
    ]
    out = merge_by_span(segs, 500, 1000)
    assert spans(out) == [("chr1", 0, 1100), ("chr1", 5000, 6000)]


def test_small_segment_without_neighbor_is_kept():
    segs = [make_seg("chr1", 0, 100, 3, 5)]
    out = merge_using_excluded_intervals(segs, 500, None)
    assert spans(out) == [("chr1", 0, 100)]


def test_adjacent_equal_calls_are_merged():
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 1000, 2000, 2, 10),
        make_seg("chr1", 2000, 3000, 3, 10),
    ]
    out = merge_using_excluded_intervals(segs, 0, None)
    assert spans(out) == [("chr1", 0, 2000), ("chr1", 2000, 3000)]


def test_excluded_region_blocks_equal_call_merge():
    excluded = build_excluded_index([GenomicInterval("chr1", 1000, 1001)])
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 1000, 2000, 2, 10),
    ]
    out = merge_using_excluded_intervals(segs, 0, excluded)
    assert len(out) == 2


@pytest.mark.parametrize("span,expected", [(500, 1), (499, 2)])
def test_span_limit_is_inclusive(span, expected):
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 1500, 2000, 2, 10),
    ]
    assert len(merge_by_span(segs, 0, span)) == expected


def test_merging_never_crosses_chromosomes():
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr2", 0, 100, 3, 1),
        make_seg("chr2", 100, 1000, 2, 5),
    ]
    out = merge_using_excluded_intervals(segs, 500, None)
    assert spans(out) == [("chr1", 0, 1000), ("chr2", 0, 1000)]


def test_bins_are_conserved_and_output_does_not_overlap():
    segs = [
        make_seg("chr1", 0, 5000, 2, 30),
        make_seg("chr1", 5000, 5200, 1, 3),
        make_seg("chr1", 5200, 9000, 2, 12),
        make_seg("chr1", 9000, 9100, 4, 2),
        make_seg("chr1", 9100, 9300, 4, 2),
        make_seg("chr1", 9300, 20000, 3, 40),
        make_seg("chr2", 0, 300, 1, 8),
        make_seg("chr2", 300, 4000, 1, 25),
    ]
    bins_in = sum(s.bin_count for s in segs)
    out = merge_using_excluded_intervals(segs, 1000, None)
    assert sum(s.bin_count for s in out) == bins_in
    for a, b in zip(out, out[1:]):
        if a.chromosome == b.chromosome:
            assert a.end <= b.begin


def test_merge_is_idempotent():
    segs = [
        make_seg("chr1", 0, 5000, 2, 30),
        make_seg("chr1", 5000, 5200, 1, 3),
        make_seg("chr1", 5200, 9000, 2, 12),
        make_seg("chr1", 9000, 20000, 3, 40),
    ]
    once = merge_using_excluded_intervals(segs, 1000, None)
    twice = merge_using_excluded_intervals(list(once), 1000, None)
    assert spans(once) == spans(twice)


def test_unsorted_input_is_rejected():
    segs = [
        make_seg("chr1", 1000, 2000, 2, 10),
        make_seg("chr1", 0, 1000, 2, 10),
    ]
    with pytest.raises(ValueError, match="not sorted"):
        merge_using_excluded_intervals(segs, 0, None)


def test_interleaved_chromosomes_are_rejected():
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr2", 0, 1000, 2, 10),
        make_seg("chr1", 1000, 2000, 2, 10),
    ]
    with pytest.raises(ValueError, match="not grouped"):
        check_sorted(segs)


def test_negative_span_is_rejected():
    with pytest.raises(ValueError):
        merge_by_span([make_seg("chr1", 0, 1000, 2, 10)], 0, -1)


def test_policies_report_their_no_neighbor_sentinels():
    assert ExcludedIntervalPolicy().no_neighbor_qscore == 0
    assert SpanPolicy(maximum_merge_span=10).no_neighbor_qscore == -1
    assert not ExcludedIntervalPolicy().accepts(0)
    assert SpanPolicy(maximum_merge_span=10).accepts(0)


def test_merge_segments_with_explicit_policy():
    segs = [
        make_seg("chr1", 0, 1000, 2, 10),
        make_seg("chr1", 3000, 4000, 2, 10),
    ]
    out = merge_segments(segs, 0, SpanPolicy(maximum_merge_span=1999))
    assert len(out) == 2


def test_region_inside_gap_blocks_only_exclusion_merge():
    excluded = build_excluded_index([GenomicInterval("chr1", 15, 16)])

    def fresh():
        return [make_seg("chr1", 0, 10, 2, 10, nbins=1), make_seg("chr1", 20, 30, 2, 10, nbins=1)]

    assert spans(merge_using_excluded_intervals(fresh(), 0, excluded)) == [("chr1", 0, 10), ("chr1", 20, 30)]
    assert spans(merge_by_span(fresh(), 0, 10_000)) == [("chr1", 0, 30)]


@pytest.mark.parametrize("q", [7, 0])
def test_span_merge_tie_goes_to_backward_neighbor(q):
    segs = [
        make_seg("chr1", 0, 1000, 2, q),
        make_seg("chr1", 1000, 1100, 3, 1),
        make_seg("chr1", 1100, 2000, 1, q),
    ]
    out = merge_by_span(segs, 500, 1000)
    assert spans(out) == [("chr1", 0, 1100), ("chr1", 1100, 2000)]


def test_merge_policy_requires_both_methods():
    class GapOnly(MergePolicy):
        def mergeable(self, chromosome, left_end, right_begin):
            return True

    with pytest.raises(TypeError):
        GapOnly()
