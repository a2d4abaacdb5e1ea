"""Identity-by-descent segment detection between two samples.

Per chromosome, the positions called in both samples are walked in order.
A marker is concordant when the two genotypes share at least one allele
(IBS > 0), which holds at every marker of a segment inherited from a common
ancestor. Concordant runs absorb stretches of fewer than ``gap_tolerance``
consecutive discordant markers (genotyping error); a longer stretch ends
the run, and trailing discordant markers are trimmed off.

A run becomes a segment when its physical span reaches
``min_segment_length`` bp and its genetic length reaches ``min_cm``. Genetic
length comes from the records' genetic map positions when both endpoints
carry one, else 1 cM per Mb.
"""

import logging
import math
from dataclasses import dataclass

from allele_compat.config import AnalysisConfig
from allele_compat.models import GenotypeRecord, IBDResult, IBDSegment
from allele_compat.sample import Sample

logger = logging.getLogger(__name__)

GENOTYPE_ERROR_RATE = 0.01
# Probability that two unrelated genotypes share an allele by chance
UNRELATED_IBS_SHARE = 0.85
BP_PER_CM = 1_000_000

LOD_CONCORDANT = math.log10((1 - GENOTYPE_ERROR_RATE) / UNRELATED_IBS_SHARE)
LOD_DISCORDANT = math.log10(GENOTYPE_ERROR_RATE / (1 - UNRELATED_IBS_SHARE))


@dataclass(slots=True)
class SharedMarker:
    position: int
    concordant: bool
    identical: bool
    cm: float | None


def shares_allele(a: GenotypeRecord, b: GenotypeRecord) -> bool:
    """IBS > 0: at least one allele in common."""
    return bool(set(a.alleles) & set(b.alleles))


def shared_markers(a: Sample, b: Sample, chromosome: str) -> list[SharedMarker]:
    """Positions called in both samples on one chromosome, sorted by position."""
    positions_a = a.positions_on(chromosome)
    positions_b = b.positions_on(chromosome)
    markers = []
    for position in sorted(positions_a.keys() & positions_b.keys()):
        rec_a = positions_a[position]
        rec_b = positions_b[position]
        if not (rec_a.is_called and rec_b.is_called):
            continue
        markers.append(
            SharedMarker(
                position=position,
                concordant=shares_allele(rec_a, rec_b),
                identical=sorted(rec_a.alleles) == sorted(rec_b.alleles),
                cm=rec_a.cm if rec_a.cm is not None else rec_b.cm,
            )
        )
    return markers


def find_runs(markers: list[SharedMarker], gap_tolerance: int) -> list[tuple[int, int]]:
    """Concordant runs as (first, last) marker indices, both concordant.

    Example:
        >>> # C C D C C D D C   (gap_tolerance=2)
        >>> find_runs(markers, 2)
        [(0, 4), (7, 7)]
    """
    runs = []
    start: int | None = None
    last_concordant = -1
    discordant_streak = 0

    for i, marker in enumerate(markers):
        if marker.concordant:
            if start is None:
                start = i
            last_concordant = i
            discordant_streak = 0
            continue
        if start is None:
            continue
        discordant_streak += 1
        if discordant_streak >= gap_tolerance:
            runs.append((start, last_concordant))
            start = None
            discordant_streak = 0

    if start is not None:
        runs.append((start, last_concordant))
    return runs


def genetic_length(first: SharedMarker, last: SharedMarker) -> float:
    """Segment length in cM from the genetic map, else 1 cM per Mb."""
    if first.cm is not None and last.cm is not None:
        return abs(last.cm - first.cm)
    return (last.position - first.position) / BP_PER_CM


def build_segment(
    chromosome: str,
    markers: list[SharedMarker],
    first: int,
    last: int,
) -> IBDSegment:
    span = markers[first:last + 1]
    concordant = sum(1 for m in span if m.concordant)
    discordant = len(span) - concordant
    return IBDSegment(
        chromosome=chromosome,
        start=markers[first].position,
        end=markers[last].position,
        length_cm=genetic_length(markers[first], markers[last]),
        marker_count=len(span),
        concordance=concordant / len(span),
        lod=round(concordant * LOD_CONCORDANT + discordant * LOD_DISCORDANT, 4),
    )


def detect_ibd(a: Sample, b: Sample, config: AnalysisConfig) -> IBDResult:
    """Detect IBD segments shared by two samples.

    Chromosomes with fewer than two shared positions are skipped. Segments
    never cross chromosome boundaries.
    """
    segments: list[IBDSegment] = []
    shared_total = 0
    identical_total = 0

    for chromosome in a.chromosomes:
        if chromosome not in b.records:
            continue
        markers = shared_markers(a, b, chromosome)
        shared_total += len(markers)
        identical_total += sum(1 for m in markers if m.identical)
        if len(markers) < 2:
            continue

        for first, last in find_runs(markers, config.gap_tolerance):
            segment = build_segment(chromosome, markers, first, last)
            if segment.end <= segment.start:
                continue
            if segment.end - segment.start < config.min_segment_length:
                continue
            if segment.length_cm < config.min_cm:
                continue
            segments.append(segment)

    total_cm = sum(s.length_cm for s in segments)
    logger.debug(
        f"IBD {a.sample_id} vs {b.sample_id}: {len(segments)} segments, "
        f"{total_cm:.1f} cM over {shared_total} shared markers"
    )
    return IBDResult(
        segments=tuple(segments),
        total_cm=total_cm,
        largest_segment_cm=max((s.length_cm for s in segments), default=0.0),
        shared_marker_count=shared_total,
        identical_fraction=identical_total / shared_total if shared_total else 0.0,
    )


def run(sample: Sample, other: Sample | None, config: AnalysisConfig) -> IBDResult:
    if other is None:
        raise ValueError("IBD detection needs a comparison sample")
    return detect_ibd(sample, other, config)
