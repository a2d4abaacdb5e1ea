"""Data models for the allele compatibility toolkit.

Canonical genotype records produced by every parser, sample metadata, the
per-module analysis outputs and the Report handed to the rendering layer.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Any

from allele_compat.utils import NO_CALL


class FileFormat(Enum):
    """Source format tag selected by the format detector."""

    VCF = auto()
    BCF = auto()
    TWENTYTHREE_AND_ME = auto()
    ANCESTRY_DNA = auto()
    FTDNA = auto()
    MYHERITAGE = auto()
    PLINK_PED = auto()  # .ped/.map
    PLINK_BED = auto()  # .bed/.bim/.fam
    FASTA = auto()
    FASTQ = auto()
    BED = auto()  # UCSC interval file
    GFF = auto()
    GVF = auto()
    SAM = auto()
    BAM = auto()
    CRAM = auto()
    TSV = auto()
    CSV = auto()
    HLA_TYPING = auto()


class ModuleTag(Enum):
    """Analysis modules, in the order their slots appear in a Report."""

    IBD = auto()
    RELATIONSHIP = auto()
    HLA = auto()
    ORGAN = auto()
    DISEASE = auto()
    PHARMACOGENOMICS = auto()

    @property
    def pairwise(self) -> bool:
        """Whether the module compares two samples."""
        return self not in (ModuleTag.DISEASE, ModuleTag.PHARMACOGENOMICS)


ALL_MODULES: frozenset[ModuleTag] = frozenset(ModuleTag)


class OrganType(Enum):
    """Organ selector for transplant compatibility."""

    KIDNEY = "kidney"
    LIVER = "liver"
    HEART = "heart"
    LUNG = "lung"
    PANCREAS = "pancreas"
    BONE_MARROW = "bone-marrow"
    CORNEA = "cornea"
    SKIN = "skin"


class RiskClass(Enum):
    """Risk classification of an observed variant."""

    PROTECTIVE = auto()
    NEUTRAL = auto()
    RISK = auto()
    HIGH_RISK = auto()


class DosingImplication(Enum):
    """Dosing label attached to a pharmacogenomic hit."""

    NORMAL = auto()
    REDUCED = auto()
    INCREASED = auto()
    AVOID = auto()


class Relationship(Enum):
    """Predicted relationship categories, closest first."""

    IDENTICAL = auto()  # monozygotic twin / duplicate sample
    PARENT_CHILD = auto()
    FULL_SIBLING = auto()
    SECOND_DEGREE = auto()  # half sibling, grandparent, aunt/uncle
    FIRST_COUSIN = auto()
    FIRST_COUSIN_ONCE_REMOVED = auto()
    SECOND_COUSIN = auto()
    SECOND_COUSIN_ONCE_REMOVED = auto()
    THIRD_COUSIN = auto()
    DISTANT = auto()
    UNRELATED = auto()


class Crossmatch(Enum):
    """Crossmatch outlook derived from the composite compatibility score."""

    COMPATIBLE = auto()
    REQUIRES_FURTHER_TESTING = auto()
    INCOMPATIBLE = auto()


class SlotStatus(Enum):
    """Outcome of one module slot in a Report."""

    OK = auto()
    SKIPPED = auto()  # InsufficientData
    ERROR = auto()  # ModuleError
    ABORTED = auto()  # never started because the run was aborted


@dataclass(frozen=True, slots=True)
class GenotypeRecord:
    """Canonical genotype call at one genomic position.

    Attributes:
        chromosome: Canonical chromosome name ("1".."22", "X", "Y", "XY", "MT", contigs)
        position: 1-based base pair position
        ref: Reference allele ("N" when the source format has none)
        alleles: Observed allele pair; (".", ".") for a missing call
        rsid: Variant identifier when the source carries one
        quality: Call quality / confidence when the source carries one
        cm: Genetic map position in centimorgans when known
    """

    chromosome: str
    position: int
    ref: str
    alleles: tuple[str, str]
    rsid: str | None = None
    quality: float | None = None
    cm: float | None = None

    @property
    def is_called(self) -> bool:
        return NO_CALL not in self.alleles

    @property
    def is_homozygous(self) -> bool:
        return self.is_called and self.alleles[0] == self.alleles[1]

    @property
    def is_heterozygous(self) -> bool:
        return self.is_called and self.alleles[0] != self.alleles[1]

    @property
    def genotype(self) -> str:
        """Unordered genotype string, e.g. "AG" (alleles sorted)."""
        if not self.is_called:
            return "--"
        a1, a2 = sorted(self.alleles)
        if len(a1) == 1 and len(a2) == 1:
            return a1 + a2
        return f"{a1}/{a2}"


@dataclass(frozen=True)
class BloodType:
    """ABO group with optional Rh(D) status.

    Attributes:
        abo: "O", "A", "B" or "AB"
        rh_positive: True/False, or None when unknown
    """

    abo: str
    rh_positive: bool | None = None

    @classmethod
    def parse(cls, value: str) -> "BloodType":
        """Parse "O+", "AB-", "A", "b pos" style strings.

        Raises:
            ValueError: If the ABO group is not recognized
        """
        cleaned = value.strip().upper().replace(" ", "")
        rh: bool | None = None
        for suffix, flag in (("POS", True), ("NEG", False), ("+", True), ("-", False)):
            if cleaned.endswith(suffix):
                rh = flag
                cleaned = cleaned[: -len(suffix)]
                break
        if cleaned not in {"O", "A", "B", "AB"}:
            raise ValueError(f"Unrecognized blood type: {value!r}")
        return cls(abo=cleaned, rh_positive=rh)

    def __str__(self) -> str:
        if self.rh_positive is None:
            return self.abo
        return f"{self.abo}{'+' if self.rh_positive else '-'}"


@dataclass(frozen=True)
class SampleMetadata:
    """Optional metadata a source format may declare.

    Attributes:
        sex: "male", "female" or None
        blood_type: Declared blood type
        hla_alleles: Declared HLA typing, locus -> allele names ("A" -> ("02:01", "24:02"))
        genome_build: Reference build declared by the file
        extra: Other header key/values worth keeping
    """

    sex: str | None = None
    blood_type: BloodType | None = None
    hla_alleles: dict[str, tuple[str, ...]] = field(default_factory=dict)
    genome_build: str | None = None
    extra: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class QualityMetrics:
    """Summary statistics computed once when a Sample is built."""

    record_count: int = 0
    called_count: int = 0
    call_rate: float = 0.0
    heterozygosity_rate: float = 0.0
    ti_tv_ratio: float | None = None


@dataclass(frozen=True)
class IBDSegment:
    """A shared segment between two samples.

    Attributes:
        chromosome: Chromosome the segment lies on
        start: First concordant position (bp)
        end: Last concordant position (bp), always > start
        length_cm: Genetic length (genetic map when available, else 1 cM/Mb)
        marker_count: Shared markers inside the segment
        concordance: Fraction of those markers that were concordant
        lod: Log-odds score of IBD vs. unrelated for the markers in the segment
    """

    chromosome: str
    start: int
    end: int
    length_cm: float
    marker_count: int
    concordance: float
    lod: float


@dataclass(frozen=True)
class IBDResult:
    """Shared segments for a pair.

    Attributes:
        segments: Segments in chromosome, then position order
        total_cm: Sum of segment lengths
        largest_segment_cm: Longest segment (0.0 when none)
        shared_marker_count: Positions called in both samples
        identical_fraction: Fraction of shared markers with identical genotypes
    """

    segments: tuple[IBDSegment, ...]
    total_cm: float
    largest_segment_cm: float
    shared_marker_count: int
    identical_fraction: float = 0.0

    @property
    def segment_count(self) -> int:
        return len(self.segments)


@dataclass(frozen=True)
class RelationshipResult:
    relationship: Relationship
    confidence: float
    total_cm: float
    segment_count: int
    expected_range_cm: tuple[float, float | None]


@dataclass(frozen=True)
class HLALocusMatch:
    """Match outcome for one HLA locus.

    Attributes:
        locus: Locus name without the "HLA-" prefix ("A", "DRB1", ...)
        typed: Whether both samples had data for the locus
        matched_alleles: 0, 1 or 2 alleles shared
    """

    locus: str
    typed: bool
    matched_alleles: int = 0

    @property
    def is_match(self) -> bool:
        return self.typed and self.matched_alleles == 2


@dataclass(frozen=True)
class HLAResult:
    loci: tuple[HLALocusMatch, ...]
    source: str  # "declared" or "genotype"

    @property
    def typed_count(self) -> int:
        return sum(1 for locus in self.loci if locus.typed)

    @property
    def match_count(self) -> int:
        return sum(1 for locus in self.loci if locus.is_match)

    @property
    def matched_loci(self) -> list[str]:
        return [f"HLA-{locus.locus}" for locus in self.loci if locus.is_match]

    @property
    def mismatches(self) -> list[str]:
        return [f"HLA-{locus.locus}" for locus in self.loci if locus.typed and not locus.is_match]

    @property
    def allele_match_fraction(self) -> float:
        """Shared alleles over typed alleles (two per typed locus)."""
        typed = self.typed_count
        if typed == 0:
            return 0.0
        return sum(locus.matched_alleles for locus in self.loci if locus.typed) / (2 * typed)


@dataclass(frozen=True)
class CompatibilityScore:
    organ: OrganType
    matched_loci: tuple[str, ...]
    mismatched_loci: tuple[str, ...]
    blood_type_compatible: bool | None
    hla_score: float
    score: float
    crossmatch: Crossmatch
    recipient_blood_type: str | None = None
    donor_blood_type: str | None = None
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class RiskVariantHit:
    """A reference-table variant observed in a sample.

    Attributes:
        variant_id: rsID of the table entry
        gene: Gene symbol
        condition: Associated condition
        genotype: Observed genotype (sample's strand)
        effect_copies: Copies of the effect allele (after any strand flip)
        classification: Risk classification
        odds_ratio: Published odds ratio, when known
    """

    variant_id: str
    gene: str
    condition: str
    genotype: str
    effect_copies: int
    classification: RiskClass
    odds_ratio: float | None = None


@dataclass(frozen=True)
class DiseaseRiskResult:
    sample_id: str
    hits: tuple[RiskVariantHit, ...]
    condition_scores: dict[str, float] = field(default_factory=dict)
    condition_levels: dict[str, str] = field(default_factory=dict)
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class PharmacogenomicHit:
    variant_id: str
    gene: str
    drug: str
    genotype: str
    effect_copies: int
    classification: RiskClass
    dosing: DosingImplication
    star_allele: str | None = None


@dataclass(frozen=True)
class PharmacogenomicsResult:
    sample_id: str
    hits: tuple[PharmacogenomicHit, ...]

    @property
    def actionable(self) -> list[PharmacogenomicHit]:
        return [hit for hit in self.hits if hit.dosing is not DosingImplication.NORMAL]


ModuleOutput = (
    IBDResult
    | RelationshipResult
    | HLAResult
    | CompatibilityScore
    | DiseaseRiskResult
    | PharmacogenomicsResult
)


@dataclass(frozen=True)
class AnalysisResult:
    """One module slot of a Report.

    Exactly one of ``output`` (status OK) or ``reason`` (any other status)
    is set.
    """

    module: ModuleTag
    patient_id: str
    comparison_id: str | None
    status: SlotStatus
    output: ModuleOutput | None = None
    reason: str | None = None
    started_at: datetime | None = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is SlotStatus.OK


@dataclass(frozen=True)
class Report:
    """All analysis results for one (patient, comparison file) pair."""

    patient_id: str
    comparison_id: str | None
    results: tuple[AnalysisResult, ...]
    generated_at: datetime
    comparison_path: Path | None = None
    error: str | None = None

    def result_for(self, module: ModuleTag) -> AnalysisResult | None:
        for result in self.results:
            if result.module is module:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation for the rendering layer."""
        return _to_jsonable(self)


def _to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums, paths and datetimes."""
    if is_dataclass(value) and not isinstance(value, type):
        data = {f.name: _to_jsonable(getattr(value, f.name)) for f in fields(value)}
        # Derived properties worth exposing to renderers
        if isinstance(value, HLAResult):
            data["match_count"] = value.match_count
            data["typed_count"] = value.typed_count
            data["mismatches"] = value.mismatches
        elif isinstance(value, IBDResult):
            data["segment_count"] = value.segment_count
        return data
    if isinstance(value, Enum):
        return value.name.lower()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(_to_jsonable(k)): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_jsonable(item) for item in value]
    return value

