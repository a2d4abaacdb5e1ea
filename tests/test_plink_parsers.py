"""Tests for PLINK text (.ped/.map) and binary (.bed/.bim/.fam) parsers."""

from pathlib import Path

import pytest

from allele_compat.config import ParseOptions
from allele_compat.exceptions import ParseError
from allele_compat.models import FileFormat
from allele_compat.parsers import load_sample, parse


@pytest.fixture
def ped_fileset(tmp_path: Path) -> Path:
    """Two individuals, three variants; IND1 uses numeric allele codes at rs3."""
    (tmp_path / "study.ped").write_text(
        "FAM1 IND1 0 0 2 -9 A G 0 0 1 3\n"
        "FAM1 IND2 0 0 1 -9 A A C C G G\n"
    )
    (tmp_path / "study.map").write_text(
        "1 rs1 0 100\n"
        "1 rs2 0.5 200\n"
        "2 rs3 0 300\n"
    )
    return tmp_path / "study.ped"


@pytest.fixture
def bed_fileset(tmp_path: Path) -> Path:
    """Two individuals, three variants in SNP-major order.

    Sample 0 sits in the low two bits of each byte, sample 1 in the next two:
    rs1: 00 (hom A1) / 10 (het)
    rs2: 11 (hom A2) / 01 (missing)
    rs3: 10 (het)    / 00 (hom A1)
    """
    (tmp_path / "study.fam").write_text(
        "FAM1 IND1 0 0 1 -9\n"
        "FAM2 IND2 0 0 2 -9\n"
    )
    (tmp_path / "study.bim").write_text(
        "1\trs1\t0\t100\tA\tG\n"
        "1\trs2\t0\t200\tC\tT\n"
        "2\trs3\t0.25\t300\tG\tA\n"
    )
    (tmp_path / "study.bed").write_bytes(b"\x6c\x1b\x01" + bytes([0x08, 0x07, 0x02]))
    return tmp_path / "study.bed"


class TestPedParser:
    """Tests for the PLINK text fileset."""

    def test_first_individual(self, ped_fileset: Path) -> None:
        stream = parse(ped_fileset)
        records = list(stream)

        assert stream.format == FileFormat.PLINK_PED
        assert stream.sample_id == "IND1"
        assert [(r.chromosome, r.position) for r in records] == [("1", 100), ("1", 200), ("2", 300)]
        assert records[0].alleles == ("A", "G")
        assert records[0].cm is None
        assert records[1].is_called is False
        assert records[1].cm == 0.5
        assert records[2].alleles == ("A", "G")  # 1/3 numeric coding

        metadata = stream.metadata
        assert metadata.sex == "female"
        assert metadata.extra["family_id"] == "FAM1"

    def test_select_individual(self, ped_fileset: Path) -> None:
        sample = load_sample(ped_fileset, options=ParseOptions(sample_id="FAM1_IND2"))

        assert sample.sample_id == "IND2"
        assert [r.alleles for r in sample.iter_records()] == [("A", "A"), ("C", "C"), ("G", "G")]
        assert sample.metadata.sex == "male"

    def test_map_from_either_file(self, ped_fileset: Path) -> None:
        """The fileset resolves from the .map path too."""
        records = list(parse(ped_fileset.with_suffix(".map"), FileFormat.PLINK_PED))

        assert len(records) == 3

    def test_variant_count_mismatch(self, ped_fileset: Path) -> None:
        ped_fileset.with_suffix(".map").write_text("1 rs1 0 100\n1 rs2 0 200\n2 rs3 0 300\n2 rs4 0 400\n")

        with pytest.raises(ParseError, match="more variants"):
            list(parse(ped_fileset))

    def test_excluded_variant(self, ped_fileset: Path) -> None:
        """Negative positions mark variants PLINK excluded; they are dropped."""
        ped_fileset.with_suffix(".map").write_text("1 rs1 0 100\n1 rs2 0 -200\n2 rs3 0 300\n")

        records = list(parse(ped_fileset))

        assert [r.rsid for r in records] == ["rs1", "rs3"]

    def test_unknown_individual(self, ped_fileset: Path) -> None:
        with pytest.raises(ParseError, match="not found"):
            list(parse(ped_fileset, options=ParseOptions(sample_id="IND9")))


class TestBedParser:
    """Tests for the PLINK binary fileset."""

    def test_first_individual(self, bed_fileset: Path) -> None:
        stream = parse(bed_fileset)
        records = list(stream)

        assert stream.format == FileFormat.PLINK_BED
        assert stream.sample_id == "IND1"
        assert [r.alleles for r in records] == [("A", "A"), ("T", "T"), ("G", "A")]
        assert records[2].cm == 0.25
        assert stream.metadata.sex == "male"

    def test_second_individual(self, bed_fileset: Path) -> None:
        stream = parse(bed_fileset.with_suffix(".bim"), options=ParseOptions(sample_id="IND2"))
        records = list(stream)

        assert [r.alleles for r in records] == [("A", "G"), (".", "."), ("G", "G")]
        assert stream.metadata.extra["family_id"] == "FAM2"

    def test_truncated_bed(self, bed_fileset: Path) -> None:
        bed_fileset.write_bytes(b"\x6c\x1b\x01" + bytes([0x08, 0x07]))

        with pytest.raises(ParseError, match="ends before variant"):
            list(parse(bed_fileset))

    def test_individual_major_rejected(self, bed_fileset: Path) -> None:
        bed_fileset.write_bytes(b"\x6c\x1b\x00" + bytes([0x08, 0x07, 0x02]))

        with pytest.raises(ParseError, match="individual-major"):
            list(parse(bed_fileset, FileFormat.PLINK_BED))

    def test_missing_fam(self, bed_fileset: Path) -> None:
        bed_fileset.with_suffix(".fam").unlink()

        with pytest.raises(ParseError, match="Sample file not found"):
            list(parse(bed_fileset))
