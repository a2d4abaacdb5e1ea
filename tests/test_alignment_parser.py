"""Tests for the SAM/BAM/CRAM pileup-summary parser."""

from collections import Counter
from pathlib import Path

import pysam
import pytest

from allele_compat.config import ParseOptions
from allele_compat.exceptions import ParseError
from allele_compat.models import FileFormat
from allele_compat.parsers import parse
from allele_compat.parsers.alignment import summarize_pileup

SAM_HEADER = (
    "@HD\tVN:1.6\tSO:{sort_order}\n"
    "@SQ\tSN:chr1\tLN:10000\n"
    "@RG\tID:rg1\tSM:DONOR7\n"
)


def _read(name: str, position: int, sequence: str, quality: str | None = None) -> str:
    quality = quality or "I" * len(sequence)
    return (
        f"{name}\t0\tchr1\t{position}\t60\t{len(sequence)}M\t*\t0\t0\t"
        f"{sequence}\t{quality}\tRG:Z:rg1\n"
    )


class TestSummarizePileup:
    """Test base-count summaries."""

    def test_heterozygous(self) -> None:
        assert summarize_pileup(Counter({"A": 6, "G": 4}), 4, 0.2) == (("A", "G"), 1.0)

    def test_homozygous_with_noise(self) -> None:
        pair, support = summarize_pileup(Counter({"C": 9, "T": 1}), 4, 0.2)

        assert pair == ("C", "C")
        assert support == 0.9

    def test_below_min_depth(self) -> None:
        assert summarize_pileup(Counter({"A": 3}), 4, 0.2) is None


class TestParseSam:
    """Test streaming pileup over a text SAM file."""

    def test_pileup_records(self, tmp_path: Path) -> None:
        sam = tmp_path / "donor.sam"
        sam.write_text(
            SAM_HEADER.format(sort_order="coordinate")
            + _read("r1", 100, "ACGT")
            + _read("r2", 100, "ACGT")
            + _read("r3", 100, "GCGT")
            + _read("r4", 100, "GCGT")
            + _read("r5", 102, "GT", quality="I#")
        )

        stream = parse(sam)
        records = list(stream)

        assert stream.format == FileFormat.SAM
        assert stream.sample_id == "DONOR7"
        assert [(r.chromosome, r.position) for r in records] == [("1", 100), ("1", 101), ("1", 102), ("1", 103)]
        assert records[0].alleles == ("A", "G")
        assert records[1].alleles == ("C", "C")
        assert records[2].alleles == ("G", "G")
        # The low-quality base of r5 is not counted
        assert records[3].alleles == ("T", "T")
        assert all(r.ref == "N" for r in records)

    def test_min_depth_option(self, tmp_path: Path) -> None:
        sam = tmp_path / "donor.sam"
        sam.write_text(SAM_HEADER.format(sort_order="coordinate") + _read("r1", 100, "AC") + _read("r2", 100, "AC"))

        assert list(parse(sam)) == []
        assert len(list(parse(sam, options=ParseOptions(min_depth=2)))) == 2

    def test_queryname_sorted_rejected(self, tmp_path: Path) -> None:
        sam = tmp_path / "donor.sam"
        sam.write_text(SAM_HEADER.format(sort_order="queryname") + _read("r1", 100, "ACGT"))

        with pytest.raises(ParseError, match="coordinate-sorted"):
            list(parse(sam, FileFormat.SAM))

    def test_out_of_order_reads(self, tmp_path: Path) -> None:
        sam = tmp_path / "donor.sam"
        sam.write_text(
            SAM_HEADER.format(sort_order="coordinate")
            + _read("r1", 500, "ACGT")
            + _read("r2", 100, "ACGT")
        )

        with pytest.raises(ParseError, match="out of coordinate order"):
            list(parse(sam, FileFormat.SAM))


class TestParseBam:
    """Test the binary container against the SAM text it was written from."""

    def test_bam_matches_sam(self, tmp_path: Path) -> None:
        sam = tmp_path / "donor.sam"
        sam.write_text(
            SAM_HEADER.format(sort_order="coordinate")
            + _read("r1", 100, "ACGT")
            + _read("r2", 100, "ACGT")
            + _read("r3", 100, "GCGT")
            + _read("r4", 100, "GCGT")
        )
        bam = tmp_path / "donor.bam"
        with pysam.AlignmentFile(str(sam), "r") as src, pysam.AlignmentFile(str(bam), "wb", template=src) as out:
            for read in src:
                out.write(read)

        sam_records = list(parse(sam))
        stream = parse(bam)
        bam_records = list(stream)

        assert stream.format == FileFormat.BAM
        assert stream.sample_id == "DONOR7"
        assert [(r.chromosome, r.position) for r in bam_records] == [("1", 100), ("1", 101), ("1", 102), ("1", 103)]
        assert [r.alleles for r in bam_records] == [r.alleles for r in sam_records]
        assert bam_records[0].alleles == ("A", "G")

    def test_cram_with_reference(self, tmp_path: Path) -> None:
        fasta = tmp_path / "ref.fa"
        sequence = "N" * 99 + "ACGT" + "N" * (10000 - 103)
        fasta.write_text(">chr1\n" + "\n".join(sequence[i:i + 60] for i in range(0, len(sequence), 60)) + "\n")
        pysam.faidx(str(fasta))
        sam = tmp_path / "donor.sam"
        sam.write_text(SAM_HEADER.format(sort_order="coordinate") + "".join(_read(f"r{i}", 100, "ACGT") for i in range(4)))
        cram = tmp_path / "donor.cram"
        with pysam.AlignmentFile(str(sam), "r") as src, pysam.AlignmentFile(
            str(cram), "wc", template=src, reference_filename=str(fasta)
        ) as out:
            for read in src:
                out.write(read)

        stream = parse(cram, options=ParseOptions(reference_fasta=fasta))
        records = list(stream)

        assert stream.format == FileFormat.CRAM
        assert [r.alleles for r in records] == [("A", "A"), ("C", "C"), ("G", "G"), ("T", "T")]
        assert [r.ref for r in records] == ["A", "C", "G", "T"]
