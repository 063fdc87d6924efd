"""Segment consolidation.

Both merge flavours share one two-phase routine:

1. Segments shorter than ``minimum_call_size`` are absorbed into the best
   neighbouring segment that is itself long enough. The backward neighbour wins
   ties on quality score.
2. Adjacent segments with the same copy-number call are merged.

What counts as a neighbour is decided by a policy object: the exclusion-aware
policy refuses to merge across excluded regions, the span policy refuses to
merge across gaps larger than a fixed number of bases.

Input lists must be grouped by chromosome and sorted by start within each
chromosome. Segments are mutated in place (the survivor absorbs its
neighbours) and a new list of survivors is returned.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from .models import Segment
from .regions import ExcludedRegionIndex

logger = logging.getLogger(__name__)

DEFAULT_MAXIMUM_MERGE_SPAN = 10_000


class MergePolicy(ABC):
    """Decides which gaps may be merged across and which quality scores make a usable neighbour."""

    #: Quality score reported when no eligible neighbour exists.
    no_neighbor_qscore: float = 0.0

    @abstractmethod
    def mergeable(self, chromosome: str, left_end: int, right_begin: int) -> bool: ...

    @abstractmethod
    def accepts(self, qscore: float) -> bool: ...


@dataclass(frozen=True)
class ExcludedIntervalPolicy(MergePolicy):
    """Neighbours may not be separated by an excluded region.

    A quality score of 0 means "no neighbour".
    """

    excluded: Optional[ExcludedRegionIndex] = None
    no_neighbor_qscore: float = 0.0

    def mergeable(self, chromosome: str, left_end: int, right_begin: int) -> bool:
        if self.excluded is None:
            return True
        return not self.excluded.is_forbidden(chromosome, left_end, right_begin)

    def accepts(self, qscore: float) -> bool:
        return qscore > 0


@dataclass(frozen=True)
class SpanPolicy(MergePolicy):
    """Neighbours may be at most ``maximum_merge_span`` bases apart.

    Scores of 0 are legitimate here, so "no neighbour" is -1.
    """

    maximum_merge_span: int = DEFAULT_MAXIMUM_MERGE_SPAN
    no_neighbor_qscore: float = -1.0

    def mergeable(self, chromosome: str, left_end: int, right_begin: int) -> bool:
        return right_begin - left_end <= self.maximum_merge_span

    def accepts(self, qscore: float) -> bool:
        return qscore >= 0


def check_sorted(segments: Sequence[Segment]) -> None:
    """Raise ValueError unless segments are grouped by chromosome and sorted by begin."""
    seen: Set[str] = set()
    prev: Optional[Segment] = None
    for i, seg in enumerate(segments):
        if prev is None or seg.chromosome != prev.chromosome:
            if seg.chromosome in seen:
                raise ValueError(
                    f"Segments are not grouped by chromosome: {seg.chromosome} reappears at index {i}"
                )
            seen.add(seg.chromosome)
        elif seg.begin < prev.begin:
            raise ValueError(
                f"Segments are not sorted by position on {seg.chromosome}: "
                f"{seg.begin} follows {prev.begin} at index {i}"
            )
        prev = seg


def _find_neighbor(
    segments: Sequence[Segment],
    index: int,
    step: int,
    minimum_call_size: int,
    policy: MergePolicy,
) -> Tuple[int, float]:
    """Nearest long-enough segment in direction ``step`` (-1 or +1) that may absorb ``segments[index]``.

    Returns ``(-1, policy.no_neighbor_qscore)`` when none qualifies.
    """
    current = segments[index]
    check = index + step
    while 0 <= check < len(segments):
        candidate = segments[check]
        if candidate.chromosome != current.chromosome:
            break
        if candidate.length < minimum_call_size:
            check += step
            continue
        if step < 0:
            ok = policy.mergeable(current.chromosome, candidate.end, current.begin)
        else:
            ok = policy.mergeable(current.chromosome, current.end, candidate.begin)
        if ok:
            return check, candidate.qscore
        break
    return -1, policy.no_neighbor_qscore


def _absorb_small_segments(
    segments: Sequence[Segment],
    minimum_call_size: int,
    policy: MergePolicy,
) -> List[Segment]:
    merged: List[Segment] = []
    kept_small = 0
    index = 0
    while index < len(segments):
        seg = segments[index]
        if seg.length >= minimum_call_size:
            merged.append(seg)
            index += 1
            continue

        prev_index, prev_q = _find_neighbor(segments, index, -1, minimum_call_size, policy)
        next_index, next_q = _find_neighbor(segments, index, +1, minimum_call_size, policy)

        if policy.accepts(prev_q) and prev_q >= next_q:
            # Everything between prev_index and index was already absorbed by it.
            segments[prev_index].merge_in(seg)
            index += 1
            continue

        if policy.accepts(next_q):
            absorber = segments[next_index]
            for tmp in range(index, next_index):
                absorber.merge_in(segments[tmp])
            index = next_index
            continue

        merged.append(seg)
        kept_small += 1
        index += 1

    if kept_small:
        logger.debug("%d undersized segments had no eligible neighbour and were kept", kept_small)
    return merged


def _merge_same_calls(segments: Sequence[Segment], policy: MergePolicy) -> List[Segment]:
    last = segments[0]
    merged: List[Segment] = [last]
    for seg in segments[1:]:
        if (
            seg.copy_number == last.copy_number
            and seg.chromosome == last.chromosome
            and policy.mergeable(last.chromosome, last.end, seg.begin)
        ):
            last.merge_in(seg)
            continue
        last = seg
        merged.append(seg)
    return merged


def merge_segments(
    segments: Sequence[Segment],
    minimum_call_size: int,
    policy: MergePolicy,
) -> List[Segment]:
    """Run both merge phases under ``policy`` and return the surviving segments."""
    if len(segments) == 0:
        return []
    check_sorted(segments)

    absorbed = _absorb_small_segments(segments, minimum_call_size, policy)
    merged = _merge_same_calls(absorbed, policy)
    logger.debug(
        "%s: %d segments -> %d after absorbing short segments -> %d after merging equal calls",
        type(policy).__name__,
        len(segments),
        len(absorbed),
        len(merged),
    )
    return merged


def merge_using_excluded_intervals(
    segments: Sequence[Segment],
    minimum_call_size: int,
    excluded_regions: Optional[ExcludedRegionIndex],
) -> List[Segment]:
    """Merge segments, never across an excluded region."""
    return merge_segments(segments, minimum_call_size, ExcludedIntervalPolicy(excluded=excluded_regions))


def merge_by_span(
    segments: Sequence[Segment],
    minimum_call_size: int = 0,
    maximum_merge_span: int = DEFAULT_MAXIMUM_MERGE_SPAN,
) -> List[Segment]:
    """Merge segments, never across a gap wider than ``maximum_merge_span`` bases."""
    if maximum_merge_span < 0:
        raise ValueError("maximum_merge_span must be >= 0")
    return merge_segments(segments, minimum_call_size, SpanPolicy(maximum_merge_span=maximum_merge_span))
