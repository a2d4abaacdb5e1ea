"""Disease risk scoring against the packaged risk variant table.

Each table variant is looked up in the sample by chromosome+position, then
by rsID. Variants absent from the sample or not called are not reported.
Per condition, hit weights (scaled by the odds ratio when known) add up to
an aggregate score that is binned into a risk level.

In a pair comparison the comparison sample is the one scored, not the
patient; a single-sample profile scores the patient.
"""

import logging

from allele_compat.analysis.reference_tables import DiseaseVariant, load_disease_table
from allele_compat.config import AnalysisConfig
from allele_compat.models import DiseaseRiskResult, RiskClass, RiskVariantHit
from allele_compat.sample import Sample

logger = logging.getLogger(__name__)

CLASSIFICATION_WEIGHTS = {
    RiskClass.HIGH_RISK: 3.0,
    RiskClass.RISK: 2.0,
    RiskClass.NEUTRAL: 0.0,
    RiskClass.PROTECTIVE: -1.0,
}

# (lower bound, level), checked in order; scores must exceed the bound
RISK_LEVELS = (
    (10.0, "very_high"),
    (5.0, "high"),
    (2.0, "moderate"),
    (0.5, "low"),
)


def classify(effect: str, copies: int) -> RiskClass:
    """Classification of an observed effect-allele copy number."""
    if effect == "protective":
        return RiskClass.PROTECTIVE if copies else RiskClass.NEUTRAL
    if copies >= 2:
        return RiskClass.HIGH_RISK
    if copies == 1:
        return RiskClass.RISK
    return RiskClass.NEUTRAL


def risk_level(score: float) -> str:
    for bound, level in RISK_LEVELS:
        if score > bound:
            return level
    return "very_low"


def match_variant(sample: Sample, variant: DiseaseVariant) -> RiskVariantHit | None:
    record = sample.lookup(variant.chromosome, variant.position, variant.variant_id)
    if record is None or not record.is_called:
        return None
    copies = variant.effect_copies(record)
    if copies is None:
        logger.debug(
            f"{sample.sample_id}: genotype {record.genotype} at {variant.variant_id} "
            f"does not fit {variant.effect_allele}/{variant.other_allele}"
        )
        return None
    return RiskVariantHit(
        variant_id=variant.variant_id,
        gene=variant.gene,
        condition=variant.condition,
        genotype=record.genotype,
        effect_copies=copies,
        classification=classify(variant.effect, copies),
        odds_ratio=variant.odds_ratio,
    )


def condition_scores(hits: list[RiskVariantHit]) -> dict[str, float]:
    scores: dict[str, float] = {}
    for hit in hits:
        weight = CLASSIFICATION_WEIGHTS[hit.classification] * (hit.odds_ratio or 1.0)
        scores[hit.condition] = scores.get(hit.condition, 0.0) + weight
    return {condition: round(score, 4) for condition, score in scores.items()}


def _recommendations(hits: list[RiskVariantHit], levels: dict[str, str]) -> list[str]:
    risk_hits = [hit for hit in hits if hit.classification in (RiskClass.RISK, RiskClass.HIGH_RISK)]
    if not risk_hits:
        return [
            "No risk-associated disease variants detected",
            "Continue routine health screenings as recommended by your physician",
        ]

    recommendations = ["Genetic variants associated with increased disease risk detected"]
    for condition in dict.fromkeys(hit.condition for hit in risk_hits):
        if levels.get(condition) in ("high", "very_high"):
            level = levels[condition].replace("_", " ")
            recommendations.append(f"{condition}: {level} aggregate risk - consider targeted screening")
    if any(hit.classification is RiskClass.HIGH_RISK for hit in risk_hits):
        recommendations.append("Two copies of a risk allele observed for at least one variant")
    recommendations.append("Consult with a genetic counselor for personalized risk assessment")
    recommendations.append("Consider lifestyle modifications to mitigate environmental risk factors")
    return recommendations


def assess_disease_risk(
    sample: Sample,
    variants: tuple[DiseaseVariant, ...],
) -> DiseaseRiskResult:
    """Score a sample against a disease variant table, hits in table order."""
    hits = [hit for hit in (match_variant(sample, v) for v in variants) if hit is not None]
    scores = condition_scores(hits)
    levels = {condition: risk_level(score) for condition, score in scores.items()}
    logger.debug(f"{sample.sample_id}: {len(hits)} of {len(variants)} disease variants observed")
    return DiseaseRiskResult(
        sample_id=sample.sample_id,
        hits=tuple(hits),
        condition_scores=scores,
        condition_levels=levels,
        recommendations=tuple(_recommendations(hits, levels)),
    )


def run(sample: Sample, other: Sample | None, config: AnalysisConfig) -> DiseaseRiskResult:
    """Score the comparison sample of a pair, or the patient in a profile."""
    target = other if other is not None else sample
    return assess_disease_risk(target, load_disease_table(config.disease_table))
