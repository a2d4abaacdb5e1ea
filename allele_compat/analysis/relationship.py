"""Relationship prediction from shared IBD totals.

The total half-identical cM is looked up in a monotonic table of expected
ranges. Near a boundary (within 5% of it) the mean segment length breaks
the tie: many short segments point to the more distant relationship, a few
long ones to the closer one.

IBS>0 segment detection cannot tell a monozygotic twin from a parent or
child (both share at least one allele genome-wide), so the top two
categories share the top range and are separated by the fraction of
identical genotypes.
"""

import logging
from dataclasses import dataclass

from allele_compat.analysis.ibd import detect_ibd
from allele_compat.config import AnalysisConfig
from allele_compat.models import IBDResult, Relationship, RelationshipResult
from allele_compat.sample import Sample

logger = logging.getLogger(__name__)

TIE_BREAK_BAND = 0.05
IDENTICAL_GENOTYPE_FRACTION = 0.95


@dataclass(frozen=True)
class RelationshipRange:
    relationship: Relationship
    low_cm: float
    high_cm: float | None
    mean_segment_cm: float  # typical mean segment length


# Closest first; each range is [low_cm, high_cm)
RELATIONSHIP_TABLE: tuple[RelationshipRange, ...] = (
    RelationshipRange(Relationship.PARENT_CHILD, 3100.0, None, 150.0),
    RelationshipRange(Relationship.FULL_SIBLING, 2200.0, 3100.0, 60.0),
    RelationshipRange(Relationship.SECOND_DEGREE, 800.0, 2200.0, 45.0),
    RelationshipRange(Relationship.FIRST_COUSIN, 400.0, 800.0, 32.0),
    RelationshipRange(Relationship.FIRST_COUSIN_ONCE_REMOVED, 200.0, 400.0, 26.0),
    RelationshipRange(Relationship.SECOND_COUSIN, 100.0, 200.0, 22.0),
    RelationshipRange(Relationship.SECOND_COUSIN_ONCE_REMOVED, 50.0, 100.0, 18.0),
    RelationshipRange(Relationship.THIRD_COUSIN, 30.0, 50.0, 15.0),
    RelationshipRange(Relationship.DISTANT, 10.0, 30.0, 12.0),
    RelationshipRange(Relationship.UNRELATED, 0.0, 10.0, 8.0),
)


def _table_index(total_cm: float) -> int:
    for i, entry in enumerate(RELATIONSHIP_TABLE):
        if total_cm >= entry.low_cm:
            return i
    return len(RELATIONSHIP_TABLE) - 1


def _tie_break(index: int, total_cm: float, mean_segment_cm: float | None) -> int:
    """Move to a neighbouring range when the total sits near a boundary."""
    if mean_segment_cm is None:
        return index
    entry = RELATIONSHIP_TABLE[index]

    # Just above the lower boundary: could belong to the more distant range
    if index + 1 < len(RELATIONSHIP_TABLE) and entry.low_cm > 0:
        if total_cm - entry.low_cm <= TIE_BREAK_BAND * entry.low_cm:
            distant = RELATIONSHIP_TABLE[index + 1]
            threshold = (entry.mean_segment_cm + distant.mean_segment_cm) / 2
            if mean_segment_cm < threshold:
                return index + 1
            return index

    # Just below the upper boundary: could belong to the closer range
    if index > 0 and entry.high_cm is not None:
        if entry.high_cm - total_cm <= TIE_BREAK_BAND * entry.high_cm:
            closer = RELATIONSHIP_TABLE[index - 1]
            threshold = (entry.mean_segment_cm + closer.mean_segment_cm) / 2
            if mean_segment_cm > threshold:
                return index - 1
    return index


def confidence_margin(entry: RelationshipRange, total_cm: float) -> float:
    """Distance to the nearest boundary of the range, normalized to [0, 1].

    Bounded ranges normalize by half their width. The open top range
    normalizes by the tie-break band width of its lower boundary. The 0 cM
    floor of the bottom range is not a boundary.
    """
    if entry.high_cm is None:
        margin = (total_cm - entry.low_cm) / (TIE_BREAK_BAND * entry.low_cm)
    elif entry.low_cm <= 0:
        margin = (entry.high_cm - total_cm) / (entry.high_cm / 2)
    else:
        half_width = (entry.high_cm - entry.low_cm) / 2
        margin = min(total_cm - entry.low_cm, entry.high_cm - total_cm) / half_width
    return max(0.0, min(1.0, margin))


def predict_relationship(ibd: IBDResult) -> RelationshipResult:
    """Map an IBD result to the best-matching relationship category."""
    total_cm = ibd.total_cm
    mean_segment_cm = total_cm / ibd.segment_count if ibd.segment_count else None

    table_index = _table_index(total_cm)
    index = _tie_break(table_index, total_cm, mean_segment_cm)
    entry = RELATIONSHIP_TABLE[index]

    relationship = entry.relationship
    if relationship is Relationship.PARENT_CHILD and ibd.identical_fraction >= IDENTICAL_GENOTYPE_FRACTION:
        relationship = Relationship.IDENTICAL

    if index != table_index:
        confidence = 0.0
    else:
        confidence = confidence_margin(entry, total_cm)

    return RelationshipResult(
        relationship=relationship,
        confidence=round(confidence, 4),
        total_cm=total_cm,
        segment_count=ibd.segment_count,
        expected_range_cm=(entry.low_cm, entry.high_cm),
    )


def run(
    sample: Sample,
    other: Sample | None,
    config: AnalysisConfig,
    ibd: IBDResult | None = None,
) -> RelationshipResult:
    """Predict the relationship, reusing an upstream IBD result when given."""
    if ibd is None:
        if other is None:
            raise ValueError("Relationship prediction needs a comparison sample")
        ibd = detect_ibd(sample, other, config)
    return predict_relationship(ibd)
