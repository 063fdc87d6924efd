from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional

UNSET_COPY_NUMBER = -1


@dataclass(frozen=True)
class GenomicInterval:
    """A half-open interval on a named chromosome.

    Coordinates are 0-based half-open (BED style): ``begin`` is inclusive and
    ``end`` is exclusive.
    """

    chromosome: str
    begin: int
    end: int

    def __post_init__(self) -> None:
        if self.begin >= self.end:
            raise ValueError(
                f"Invalid interval {self.chromosome}:{self.begin}-{self.end} (begin must be < end)"
            )

    @property
    def length(self) -> int:
        return self.end - self.begin


class CnvType(enum.Enum):
    REFERENCE = "REF"
    GAIN = "GAIN"
    LOSS = "LOSS"
    LOH = "LOH"

    @property
    def vcf_id(self) -> str:
        return self.value

    @property
    def alt_id(self) -> str:
        if self is CnvType.REFERENCE:
            return "."
        return "<CNV>"

    @property
    def sv_type(self) -> Optional[str]:
        if self is CnvType.REFERENCE:
            return None
        return "CNV"


def classify_cnv(
    observed_copy_number: int,
    reference_copy_number: int,
    major_chromosome_count: Optional[int] = None,
) -> CnvType:
    """Classify a copy-number call against the reference copy number.

    Gain/loss take precedence; loss of heterozygosity is only reported for
    copy-neutral calls in diploid regions where the major chromosome count
    equals the copy number.
    """
    if observed_copy_number < reference_copy_number:
        return CnvType.LOSS
    if observed_copy_number > reference_copy_number:
        return CnvType.GAIN
    if (
        reference_copy_number == 2
        and major_chromosome_count is not None
        and major_chromosome_count == observed_copy_number
    ):
        return CnvType.LOH
    return CnvType.REFERENCE


@dataclass(eq=False)
class Segment:
    """A genomic interval with its coverage/allele-frequency observations and call.

    Attributes
    ----------
    chromosome, begin, end:
        0-based half-open interval, same convention as :class:`GenomicInterval`.
    counts:
        Per-bin coverage depths. Never empty.
    variant_frequencies, variant_total_coverage:
        Per-SNP allele frequency and total coverage, kept the same length.
    copy_number, second_best_copy_number:
        Calls from the upstream caller; ``-1`` until assigned.
    qscore, model_distance, runner_up_model_distance:
        Scoring inputs/outputs from the calling step.
    filter:
        VCF-style filter string, ``PASS`` by default.
    """

    chromosome: str
    begin: int
    end: int
    counts: List[float]
    variant_frequencies: List[float] = field(default_factory=list)
    variant_total_coverage: List[int] = field(default_factory=list)
    copy_number: int = UNSET_COPY_NUMBER
    second_best_copy_number: int = UNSET_COPY_NUMBER
    major_chromosome_count: Optional[int] = None
    qscore: float = 0.0
    model_distance: float = 0.0
    runner_up_model_distance: float = 0.0
    filter: str = "PASS"

    def __post_init__(self) -> None:
        if self.begin >= self.end:
            raise ValueError(
                f"Invalid segment {self.chromosome}:{self.begin}-{self.end} (begin must be < end)"
            )
        if len(self.counts) == 0:
            raise ValueError(f"Segment {self.chromosome}:{self.begin}-{self.end} has no bin counts")
        if len(self.variant_frequencies) != len(self.variant_total_coverage):
            raise ValueError(
                "variant_frequencies and variant_total_coverage must have the same length "
                f"({len(self.variant_frequencies)} != {len(self.variant_total_coverage)})"
            )
        # Own private copies so later merges never write into a caller's lists.
        self.counts = [float(c) for c in self.counts]
        self.variant_frequencies = [float(v) for v in self.variant_frequencies]
        self.variant_total_coverage = [int(c) for c in self.variant_total_coverage]

    @property
    def interval(self) -> GenomicInterval:
        return GenomicInterval(self.chromosome, self.begin, self.end)

    @property
    def length(self) -> int:
        return self.end - self.begin

    @property
    def bin_count(self) -> int:
        return len(self.counts)

    @property
    def mean_count(self) -> float:
        return sum(self.counts) / self.bin_count

    def merge_in(self, other: "Segment") -> None:
        """Absorb a neighbouring segment.

        Observations of ``other`` are appended to this segment and the bounds are
        extended to the union of both intervals. Any gap between the two is
        swallowed without further checks.
        """
        if other.chromosome != self.chromosome:
            raise ValueError(
                f"Cannot merge segments on different chromosomes ({self.chromosome} vs {other.chromosome})"
            )
        if not self.counts:
            raise ValueError(f"Cannot merge into empty segment {self.chromosome}:{self.begin}-{self.end}")
        self.end = max(self.end, other.end)
        self.begin = min(self.begin, other.begin)
        self.counts.extend(other.counts)
        self.variant_frequencies.extend(other.variant_frequencies)
        self.variant_total_coverage.extend(other.variant_total_coverage)

    def cnv_type(self, reference_copy_number: int = 2) -> CnvType:
        return classify_cnv(self.copy_number, reference_copy_number, self.major_chromosome_count)
