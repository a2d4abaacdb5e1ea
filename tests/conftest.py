"""Pytest fixtures for allele_compat tests."""

from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from allele_compat.models import BloodType, FileFormat, GenotypeRecord, SampleMetadata
from allele_compat.sample import Sample


def record(
    chromosome: str,
    position: int,
    genotype: str,
    rsid: str | None = None,
    ref: str = "N",
    cm: float | None = None,
) -> GenotypeRecord:
    """Shorthand GenotypeRecord builder: genotype "AG" or "--" for a no-call."""
    alleles = (".", ".") if genotype == "--" else (genotype[0], genotype[1])
    return GenotypeRecord(chromosome, position, ref, alleles, rsid=rsid, cm=cm)


@pytest.fixture
def make_record() -> Callable[..., GenotypeRecord]:
    return record


@pytest.fixture
def make_sample() -> Callable[..., Sample]:
    """Factory building a Sample from GenotypeRecords and optional metadata."""

    def _make(
        sample_id: str,
        records: Iterable[GenotypeRecord] = (),
        blood_type: str | None = None,
        hla: dict[str, tuple[str, ...]] | None = None,
        genome_build: str | None = None,
    ) -> Sample:
        metadata = SampleMetadata(
            blood_type=BloodType.parse(blood_type) if blood_type else None,
            hla_alleles=hla or {},
            genome_build=genome_build,
        )
        return Sample.from_records(sample_id, FileFormat.VCF, records, metadata)

    return _make


@pytest.fixture
def shared_block_records() -> list[GenotypeRecord]:
    """Chromosome 1 markers every 10 kb from 1.0 Mb to 2.0 Mb.

    The genetic map runs 1000 cM across the block (1 cM per kb).
    """
    return [
        record("1", pos, "AG", rsid=f"rs{pos}", cm=(pos - 1_000_000) / 1000)
        for pos in range(1_000_000, 2_000_001, 10_000)
    ]


@pytest.fixture
def hla_typing() -> dict[str, tuple[str, ...]]:
    """Declared typing at the seven compared loci."""
    return {
        "A": ("02:01", "24:02"),
        "B": ("07:02", "44:02"),
        "C": ("05:01", "07:02"),
        "DRB1": ("15:01", "04:01"),
        "DQA1": ("01:02", "03:01"),
        "DQB1": ("06:02", "03:02"),
        "DPB1": ("04:01", "04:01"),
    }


@pytest.fixture
def vcf_text() -> str:
    """Two-sample VCF; P1 declares sex, blood type and HLA typing."""
    return (
        "##fileformat=VCFv4.2\n"
        "##reference=GRCh38\n"
        '##SAMPLE=<ID=P1,Sex=F,BloodType=O+,HLA="A*02:01|A*24:02|B*07:02",Ethnicity=unknown>\n'
        "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tP1\tP2\n"
        "chr1\t100\trs1\tA\tG\t50\tPASS\tCM=0.1\tGT:DP\t0/1:20\t1/1:10\n"
        "chr1\t200\t.\tC\tT\t.\tPASS\t.\tGT\t./.\t0/0\n"
        "chrX\t300\trs3\tG\tA\t30\tPASS\t.\tGT\t1\t0\n"
    )


@pytest.fixture
def vcf_file(tmp_path: Path, vcf_text: str) -> Path:
    path = tmp_path / "family.vcf"
    path.write_text(vcf_text)
    return path
