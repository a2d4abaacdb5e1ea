"""Sample model: one individual's canonical genotype records plus metadata.

A Sample is built once from a parser's record stream and never mutated
afterwards, so it can be shared by any number of concurrent analysis tasks.
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from allele_compat.models import FileFormat, GenotypeRecord, QualityMetrics, SampleMetadata
from allele_compat.utils import chromosome_sort_key, is_transition


def compute_quality_metrics(records: Iterable[GenotypeRecord]) -> QualityMetrics:
    """Call rate, heterozygosity and Ti/Tv over a sample's records.

    Ti/Tv counts non-reference single-base alleles of records with a known
    reference allele; it is None when there are no transversions.
    """
    total = called = het = transitions = transversions = 0
    for record in records:
        total += 1
        if not record.is_called:
            continue
        called += 1
        if record.is_heterozygous:
            het += 1
        if record.ref == "N" or len(record.ref) != 1:
            continue
        for allele in set(record.alleles):
            if allele == record.ref or len(allele) != 1:
                continue
            if is_transition(record.ref, allele):
                transitions += 1
            else:
                transversions += 1

    return QualityMetrics(
        record_count=total,
        called_count=called,
        call_rate=called / total if total else 0.0,
        heterozygosity_rate=het / called if called else 0.0,
        ti_tv_ratio=transitions / transversions if transversions else None,
    )


@dataclass(frozen=True)
class Sample:
    """Immutable genotype data for one individual.

    Attributes:
        sample_id: Identifier declared by the source file, else the file stem
        source_format: Format the records were parsed from
        records: Read-only mapping chromosome -> records in emission order
        metadata: Declared sex / blood type / HLA typing / build
        source_path: File the sample was loaded from
        metrics: Quality metrics, computed at construction
    """

    sample_id: str
    source_format: FileFormat
    records: Mapping[str, tuple[GenotypeRecord, ...]]
    metadata: SampleMetadata = field(default_factory=SampleMetadata)
    source_path: Path | None = None
    metrics: QualityMetrics = field(init=False)
    _by_position: Mapping[str, Mapping[int, GenotypeRecord]] = field(init=False, repr=False)
    _by_rsid: Mapping[str, GenotypeRecord] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        grouped = MappingProxyType({chrom: tuple(recs) for chrom, recs in self.records.items()})
        object.__setattr__(self, "records", grouped)

        by_position: dict[str, Mapping[int, GenotypeRecord]] = {}
        by_rsid: dict[str, GenotypeRecord] = {}
        for chrom, chrom_records in grouped.items():
            positions: dict[int, GenotypeRecord] = {}
            for record in chrom_records:
                # First record wins for duplicated positions
                positions.setdefault(record.position, record)
                if record.rsid:
                    by_rsid.setdefault(record.rsid, record)
            by_position[chrom] = MappingProxyType(positions)

        object.__setattr__(self, "_by_position", MappingProxyType(by_position))
        object.__setattr__(self, "_by_rsid", MappingProxyType(by_rsid))
        object.__setattr__(self, "metrics", compute_quality_metrics(self.iter_records()))

    @classmethod
    def from_records(
        cls,
        sample_id: str,
        source_format: FileFormat,
        records: Iterable[GenotypeRecord],
        metadata: SampleMetadata | None = None,
        source_path: Path | None = None,
    ) -> "Sample":
        """Materialize a record stream, grouping records by chromosome."""
        grouped: dict[str, list[GenotypeRecord]] = {}
        for record in records:
            grouped.setdefault(record.chromosome, []).append(record)
        return cls(
            sample_id=sample_id,
            source_format=source_format,
            records={chrom: tuple(recs) for chrom, recs in grouped.items()},
            metadata=metadata or SampleMetadata(),
            source_path=source_path,
        )

    def __len__(self) -> int:
        return sum(len(recs) for recs in self.records.values())

    @property
    def chromosomes(self) -> list[str]:
        """Chromosomes present, autosomes first in numeric order."""
        return sorted(self.records, key=chromosome_sort_key)

    def iter_records(self) -> Iterator[GenotypeRecord]:
        for chrom in self.chromosomes:
            yield from self.records[chrom]

    def records_on(self, chromosome: str) -> tuple[GenotypeRecord, ...]:
        return self.records.get(chromosome, ())

    def positions_on(self, chromosome: str) -> Mapping[int, GenotypeRecord]:
        """Position index for one chromosome (empty when absent)."""
        return self._by_position.get(chromosome, MappingProxyType({}))

    def get(self, chromosome: str, position: int) -> GenotypeRecord | None:
        return self.positions_on(chromosome).get(position)

    def get_by_rsid(self, rsid: str) -> GenotypeRecord | None:
        return self._by_rsid.get(rsid)

    def lookup(self, chromosome: str, position: int, rsid: str | None = None) -> GenotypeRecord | None:
        """Find a variant by chromosome+position, falling back to rsid."""
        record = self.get(chromosome, position)
        if record is None and rsid:
            record = self.get_by_rsid(rsid)
        return record
