"""Organ transplant compatibility.

The patient is the recipient and the comparison sample the donor. The
composite score weighs HLA matching against ABO/Rh compatibility by organ:

    score = w * hla_score + (1 - w) * blood_score

with blood_score 1 (compatible), 0 (incompatible) or 0.5 (unknown).
"""

import logging

from allele_compat.analysis.hla import type_hla
from allele_compat.config import AnalysisConfig
from allele_compat.exceptions import MissingOrganSelection
from allele_compat.models import BloodType, CompatibilityScore, Crossmatch, HLAResult, OrganType
from allele_compat.sample import Sample

logger = logging.getLogger(__name__)

# Weight of HLA matching in the composite score
HLA_WEIGHTS: dict[OrganType, float] = {
    OrganType.BONE_MARROW: 0.95,
    OrganType.KIDNEY: 0.6,
    OrganType.PANCREAS: 0.5,
    OrganType.HEART: 0.35,
    OrganType.LUNG: 0.35,
    OrganType.SKIN: 0.3,
    OrganType.LIVER: 0.2,
    OrganType.CORNEA: 0.05,
}

# Donor ABO group -> recipient groups that can receive it
ABO_COMPATIBILITY: dict[str, set[str]] = {
    "O": {"O", "A", "B", "AB"},
    "A": {"A", "AB"},
    "B": {"B", "AB"},
    "AB": {"AB"},
}

UNKNOWN_BLOOD_SCORE = 0.5
COMPATIBLE_THRESHOLD = 0.8
FURTHER_TESTING_THRESHOLD = 0.6

# ABO marker SNPs (GRCh37 positions, used when the rsID is absent)
ABO_O_MARKER = ("rs8176719", "9", 136132908)  # c.261delG, deletion = O allele
ABO_B_MARKER = ("rs8176746", "9", 136131322)  # c.796C>A, plus-strand T = B allele
O_ALLELES = {"D"}
B_ALLELES = {"T", "A"}


def abo_compatible(donor: BloodType, recipient: BloodType) -> bool:
    """Standard ABO/Rh donor-recipient rule; unknown Rh is not held against the pair."""
    if recipient.abo not in ABO_COMPATIBILITY[donor.abo]:
        return False
    if donor.rh_positive and recipient.rh_positive is False:
        return False
    return True


def _marker_alleles(sample: Sample, marker: tuple[str, str, int]) -> tuple[str, str] | None:
    rsid, chromosome, position = marker
    record = sample.get_by_rsid(rsid) or sample.get(chromosome, position)
    if record is None or not record.is_called:
        return None
    return record.alleles


def derive_blood_type(sample: Sample) -> BloodType | None:
    """Declared blood type, else the ABO group implied by the ABO marker SNPs.

    Without phasing, B-marker copies are assigned to the non-O haplotypes.
    Rh(D) status cannot be derived from these markers.
    """
    if sample.metadata.blood_type is not None:
        return sample.metadata.blood_type

    o_call = _marker_alleles(sample, ABO_O_MARKER)
    if o_call is None:
        return None
    o_copies = sum(1 for allele in o_call if allele in O_ALLELES)
    if o_copies == 2:
        return BloodType("O")

    b_call = _marker_alleles(sample, ABO_B_MARKER)
    if b_call is None:
        return None
    b_copies = min(2 - o_copies, sum(1 for allele in b_call if allele in B_ALLELES))

    if o_copies == 1:
        return BloodType("B" if b_copies else "A")
    return BloodType({0: "A", 1: "AB", 2: "B"}[b_copies])


def _recommendations(
    score: float,
    blood_compatible: bool | None,
    hla: HLAResult,
) -> list[str]:
    recommendations = []
    if blood_compatible is False:
        recommendations.append("ABO/Rh incompatible - not suitable without desensitization protocols")
    elif score > COMPATIBLE_THRESHOLD:
        recommendations.append("High compatibility - suitable candidate for transplantation")
    elif score > FURTHER_TESTING_THRESHOLD:
        recommendations.append("Moderate compatibility - further testing recommended")
    else:
        recommendations.append("Low compatibility - not recommended for transplantation")

    if blood_compatible is None:
        recommendations.append("Blood type unknown for donor or recipient - confirm ABO/Rh serologically")
    if len(hla.mismatches) > 3:
        recommendations.append("High number of HLA mismatches may increase rejection risk")
    untyped = [f"HLA-{locus.locus}" for locus in hla.loci if not locus.typed]
    if untyped:
        recommendations.append(f"Loci not typed: {', '.join(untyped)}")

    recommendations.append("Consult with transplant team for clinical evaluation")
    return recommendations


def score_compatibility(
    recipient: Sample,
    donor: Sample,
    organ: OrganType,
    hla: HLAResult,
) -> CompatibilityScore:
    recipient_blood = derive_blood_type(recipient)
    donor_blood = derive_blood_type(donor)
    if recipient_blood is None or donor_blood is None:
        blood_compatible = None
        blood_score = UNKNOWN_BLOOD_SCORE
    else:
        blood_compatible = abo_compatible(donor_blood, recipient_blood)
        blood_score = 1.0 if blood_compatible else 0.0

    weight = HLA_WEIGHTS[organ]
    hla_score = hla.allele_match_fraction
    score = round(weight * hla_score + (1 - weight) * blood_score, 4)

    if blood_compatible is False:
        crossmatch = Crossmatch.INCOMPATIBLE
    elif score > COMPATIBLE_THRESHOLD:
        crossmatch = Crossmatch.COMPATIBLE
    elif score > FURTHER_TESTING_THRESHOLD:
        crossmatch = Crossmatch.REQUIRES_FURTHER_TESTING
    else:
        crossmatch = Crossmatch.INCOMPATIBLE

    return CompatibilityScore(
        organ=organ,
        matched_loci=tuple(hla.matched_loci),
        mismatched_loci=tuple(hla.mismatches),
        blood_type_compatible=blood_compatible,
        hla_score=round(hla_score, 4),
        score=score,
        crossmatch=crossmatch,
        recipient_blood_type=str(recipient_blood) if recipient_blood else None,
        donor_blood_type=str(donor_blood) if donor_blood else None,
        recommendations=tuple(_recommendations(score, blood_compatible, hla)),
    )


def run(
    sample: Sample,
    other: Sample | None,
    config: AnalysisConfig,
    hla: HLAResult | None = None,
) -> CompatibilityScore:
    """Score the comparison sample as a donor for the patient.

    Raises:
        MissingOrganSelection: If config.organ is not set
        InsufficientData: If HLA typing is unavailable for the pair
    """
    if config.organ is None:
        raise MissingOrganSelection()
    if other is None:
        raise ValueError("Organ compatibility needs a donor sample")
    if hla is None:
        hla = type_hla(sample, other)
    return score_compatibility(sample, other, config.organ, hla)
