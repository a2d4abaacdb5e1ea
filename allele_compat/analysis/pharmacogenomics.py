"""Pharmacogenomic variant matching.

Matching works as for disease risk; each observed variant additionally
carries the dosing implication for its effect-allele copy number.
"""

import logging

from allele_compat.analysis.disease import classify
from allele_compat.analysis.reference_tables import PharmacogenomicVariant, load_pgx_table
from allele_compat.config import AnalysisConfig
from allele_compat.models import PharmacogenomicHit, PharmacogenomicsResult
from allele_compat.sample import Sample

logger = logging.getLogger(__name__)


def match_variant(sample: Sample, variant: PharmacogenomicVariant) -> PharmacogenomicHit | None:
    record = sample.lookup(variant.chromosome, variant.position, variant.variant_id)
    if record is None or not record.is_called:
        return None
    copies = variant.effect_copies(record)
    if copies is None:
        return None
    return PharmacogenomicHit(
        variant_id=variant.variant_id,
        gene=variant.gene,
        drug=variant.drug,
        genotype=record.genotype,
        effect_copies=copies,
        classification=classify("risk", copies),
        dosing=variant.dosing(copies),
        star_allele=variant.star_allele,
    )


def match_pharmacogenomics(
    sample: Sample,
    variants: tuple[PharmacogenomicVariant, ...],
) -> PharmacogenomicsResult:
    hits = tuple(hit for hit in (match_variant(sample, v) for v in variants) if hit is not None)
    result = PharmacogenomicsResult(sample_id=sample.sample_id, hits=hits)
    if result.actionable:
        genes = sorted({hit.gene for hit in result.actionable})
        logger.debug(f"{sample.sample_id}: actionable pharmacogenes {', '.join(genes)}")
    return result


def run(sample: Sample, other: Sample | None, config: AnalysisConfig) -> PharmacogenomicsResult:
    target = other if other is not None else sample
    return match_pharmacogenomics(target, load_pgx_table(config.pgx_table))
