"""HLA typing comparison between two samples.

Declared typing (VCF ##SAMPLE HLA field or an HLA typing file) is compared
at two-field resolution: per locus, the number of alleles shared as a
multiset (0, 1 or 2). Without declared typing on both sides, the genotype
records inside each locus's chr6 region are compared: a locus is typed when
both samples are called at one or more of the same positions; it counts 2
when every shared genotype is identical, 1 when every shared genotype has an
allele in common, else 0.

With no typed locus the module declines (InsufficientData) instead of
guessing.
"""

import logging
from collections import Counter

from allele_compat.config import AnalysisConfig
from allele_compat.exceptions import InsufficientData
from allele_compat.models import HLALocusMatch, HLAResult
from allele_compat.sample import Sample

logger = logging.getLogger(__name__)

HLA_LOCI = ("A", "B", "C", "DRB1", "DQA1", "DQB1", "DPB1")

HLA_CHROMOSOME = "6"

# Gene spans on chromosome 6 (1-based, inclusive)
HLA_REGIONS: dict[str, dict[str, tuple[int, int]]] = {
    "GRCh37": {
        "A": (29910247, 29913661),
        "C": (31236526, 31239907),
        "B": (31321649, 31324989),
        "DRB1": (32546547, 32557613),
        "DQA1": (32605183, 32611429),
        "DQB1": (32627241, 32634466),
        "DPB1": (33043703, 33057473),
    },
    "GRCh38": {
        "A": (29942470, 29945884),
        "C": (31268749, 31272130),
        "B": (31353872, 31357212),
        "DRB1": (32578769, 32589836),
        "DQA1": (32637406, 32643652),
        "DQB1": (32659464, 32666689),
        "DPB1": (33075926, 33089696),
    },
}


def two_field(allele: str) -> str:
    """Truncate an allele name to two-field resolution.

    Example:
        >>> two_field("02:01:01:02")
        "02:01"
    """
    return ":".join(allele.split(":")[:2])


def shared_allele_count(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    """Multiset overlap of two allele lists at two-field resolution (0..2)."""
    overlap = Counter(two_field(x) for x in a) & Counter(two_field(x) for x in b)
    return min(2, sum(overlap.values()))


def compare_declared(a: Sample, b: Sample) -> HLAResult:
    typing_a = a.metadata.hla_alleles
    typing_b = b.metadata.hla_alleles
    loci = []
    for locus in HLA_LOCI:
        if locus in typing_a and locus in typing_b:
            loci.append(HLALocusMatch(locus, True, shared_allele_count(typing_a[locus], typing_b[locus])))
        else:
            loci.append(HLALocusMatch(locus, False))
    return HLAResult(loci=tuple(loci), source="declared")


def _regions_for(a: Sample, b: Sample) -> dict[str, tuple[int, int]]:
    builds = {a.metadata.genome_build, b.metadata.genome_build}
    if builds == {"GRCh38"}:
        return HLA_REGIONS["GRCh38"]
    return HLA_REGIONS["GRCh37"]


def compare_region_genotypes(a: Sample, b: Sample) -> HLAResult:
    positions_a = a.positions_on(HLA_CHROMOSOME)
    positions_b = b.positions_on(HLA_CHROMOSOME)
    regions = _regions_for(a, b)

    loci = []
    for locus in HLA_LOCI:
        start, end = regions[locus]
        shared = [
            (positions_a[p], positions_b[p])
            for p in positions_a.keys() & positions_b.keys()
            if start <= p <= end and positions_a[p].is_called and positions_b[p].is_called
        ]
        if not shared:
            loci.append(HLALocusMatch(locus, False))
            continue
        if all(sorted(x.alleles) == sorted(y.alleles) for x, y in shared):
            matched = 2
        elif all(set(x.alleles) & set(y.alleles) for x, y in shared):
            matched = 1
        else:
            matched = 0
        loci.append(HLALocusMatch(locus, True, matched))
    return HLAResult(loci=tuple(loci), source="genotype")


def type_hla(a: Sample, b: Sample) -> HLAResult:
    """Compare HLA loci of two samples.

    Raises:
        InsufficientData: If no locus could be typed in both samples
    """
    result = None
    if a.metadata.hla_alleles and b.metadata.hla_alleles:
        result = compare_declared(a, b)
        if result.typed_count == 0:
            logger.debug(
                f"No declared HLA locus in common for {a.sample_id}/{b.sample_id}, "
                "falling back to region genotypes"
            )
            result = None
    if result is None:
        result = compare_region_genotypes(a, b)
    if result.typed_count == 0:
        raise InsufficientData("no HLA typing or HLA-region genotypes shared by both samples")
    return result


def run(sample: Sample, other: Sample | None, config: AnalysisConfig) -> HLAResult:
    if other is None:
        raise ValueError("HLA comparison needs a comparison sample")
    return type_hla(sample, other)
