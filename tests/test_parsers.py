"""Tests for consumer array, table, interval, sequence and HLA typing parsers."""

from pathlib import Path

import pytest

from allele_compat.config import ParseOptions
from allele_compat.exceptions import ParseError
from allele_compat.models import FileFormat
from allele_compat.parsers import PARSERS, load_sample, parse
from allele_compat.parsers.tabular import map_columns


def test_every_format_has_a_parser() -> None:
    assert set(PARSERS) == set(FileFormat)


class TestConsumerParsers:
    """Tests for 23andMe, AncestryDNA and FTDNA/MyHeritage exports."""

    def test_23andme(self, tmp_path: Path) -> None:
        raw = tmp_path / "genome_Jane.txt"
        raw.write_text(
            "# This data file generated by 23andMe\n"
            "# rsid\tchromosome\tposition\tgenotype\n"
            "rs1\t1\t100\tAG\n"
            "rs2\t1\t200\t--\n"
            "rs3\tX\t300\tA\n"
            "i4\tMT\t400\tDI\n"
            "rs5\t1\t500\tZZ\n"
        )

        stream = parse(raw)
        records = list(stream)

        assert stream.format == FileFormat.TWENTYTHREE_AND_ME
        assert stream.sample_id == "genome_Jane"
        assert [r.alleles for r in records] == [("A", "G"), (".", "."), ("A", "A"), ("D", "I")]
        assert records[3].chromosome == "MT"
        assert records[3].rsid == "i4"
        assert all(r.ref == "N" for r in records)
        # Consumer exports skip malformed lines by default
        assert stream.stats.skipped == 1
        assert stream.stats.no_calls == 1

    def test_23andme_fail_policy(self, tmp_path: Path) -> None:
        raw = tmp_path / "genome.txt"
        raw.write_text("# 23andMe\nrs1\t1\tabc\tAG\n")

        with pytest.raises(ParseError, match="invalid position"):
            list(parse(raw, options=ParseOptions(on_malformed="fail")))

    def test_ancestry(self, tmp_path: Path) -> None:
        raw = tmp_path / "ancestry.txt"
        raw.write_text(
            "#AncestryDNA raw data download\n"
            "rsid\tchromosome\tposition\tallele1\tallele2\n"
            "rs1\t1\t100\tA\tG\n"
            "rs2\t1\t200\t0\t0\n"
            "rs3\t23\t300\tC\tC\n"
        )

        records = list(parse(raw))

        assert [r.alleles for r in records] == [("A", "G"), (".", "."), ("C", "C")]
        assert records[2].chromosome == "X"

    def test_ftdna(self, tmp_path: Path) -> None:
        raw = tmp_path / "ftdna.csv"
        raw.write_text(
            "RSID,CHROMOSOME,POSITION,RESULT\n"
            '"rs1","1","100","AG"\n'
            '"rs2","1","200","--"\n'
        )

        stream = parse(raw)
        records = list(stream)

        assert stream.format == FileFormat.FTDNA
        assert records[0].rsid == "rs1"
        assert records[0].alleles == ("A", "G")
        assert records[1].is_called is False


class TestTableParser:
    """Tests for generic TSV/CSV genotype tables."""

    def test_tsv_with_vcf_style_genotypes(self, tmp_path: Path) -> None:
        table = tmp_path / "calls.tsv"
        table.write_text(
            "#chrom\tpos\tid\tref\talt\tgenotype\n"
            "1\t100\trs1\tA\tG\t0/1\n"
            "1\t200\t.\tC\tT\t1|1\n"
            "2\t50\trs3\tG\tA\t./.\n"
        )

        records = list(parse(table, FileFormat.TSV))

        assert [r.alleles for r in records] == [("A", "G"), ("T", "T"), (".", ".")]
        assert records[0].ref == "A"
        assert records[1].rsid is None

    def test_csv_with_allele_columns(self, tmp_path: Path) -> None:
        table = tmp_path / "calls.csv"
        table.write_text("chromosome,position,allele1,allele2,cM\nchr1,100,a,g,0.5\n")

        records = list(parse(table, FileFormat.CSV))

        assert records[0].chromosome == "1"
        assert records[0].alleles == ("A", "G")
        assert records[0].ref == "N"
        assert records[0].cm == 0.5

    def test_missing_required_columns(self, tmp_path: Path) -> None:
        table = tmp_path / "calls.tsv"
        table.write_text("rsid\tgenotype\nrs1\tAG\n")

        with pytest.raises(ParseError, match="Required columns"):
            list(parse(table, FileFormat.TSV))

    def test_map_columns(self) -> None:
        assert map_columns(["Chr", "Pos", "Genotype"]) == {"chromosome": 0, "position": 1, "genotype": 2}


class TestIntervalParsers:
    """Tests for UCSC BED and GFF3/GVF."""

    def test_bed(self, tmp_path: Path) -> None:
        bed = tmp_path / "calls.bed"
        bed.write_text(
            "track name=calls\n"
            "chr1\t99\t100\tA/G\t60\n"
            "chr1\t199\t200\trs123\n"
            "chr2\t0\t1\n"
        )

        records = list(parse(bed))

        assert [(r.chromosome, r.position) for r in records] == [("1", 100), ("1", 200), ("2", 1)]
        assert records[0].alleles == ("A", "G")
        assert records[0].quality == 60.0
        assert records[1].rsid == "rs123"
        assert records[1].is_called is False

    def test_bed_invalid_interval(self, tmp_path: Path) -> None:
        bed = tmp_path / "calls.bed"
        bed.write_text("chr1\t10\t5\tAG\n")

        with pytest.raises(ParseError, match="invalid interval"):
            list(parse(bed, FileFormat.BED))

    def test_gvf(self, tmp_path: Path) -> None:
        gvf = tmp_path / "variants.gvf"
        gvf.write_text(
            "##gvf-version 1.10\n"
            "##genome-build NCBI GRCh37\n"
            "##individual-id NA12878\n"
            "chr1\tsrc\tSNV\t100\t100\t.\t+\t.\tID=rs1;Variant_seq=A,G;Reference_seq=A\n"
            "chr1\tsrc\tSNV\t200\t200\t30\t+\t.\tID=v2;Dbxref=dbSNP:rs2;Variant_seq=T;"
            "Reference_seq=C;Zygosity=heterozygous\n"
            "chr1\tsrc\tSNV\t300\t300\t.\t+\t.\tID=v3;Variant_seq=~,G;Reference_seq=C\n"
            "chr1\tsrc\tgene\t400\t500\t.\t+\t.\tID=gene1\n"
        )

        stream = parse(gvf)
        records = list(stream)

        assert stream.format == FileFormat.GVF
        assert stream.sample_id == "NA12878"
        assert stream.metadata.genome_build == "GRCh37"
        assert [r.alleles for r in records] == [("A", "G"), ("C", "T"), ("C", "G")]
        assert [r.rsid for r in records] == ["rs1", "rs2", None]
        assert records[1].quality == 30.0

    def test_gff_requires_header(self, tmp_path: Path) -> None:
        gff = tmp_path / "features.gff3"
        gff.write_text("chr1\tsrc\tSNV\t100\t100\t.\t+\t.\tVariant_seq=A\n")

        with pytest.raises(ParseError, match="##gff-version"):
            list(parse(gff, FileFormat.GFF))


class TestSequenceParsers:
    """Tests for FASTA and FASTQ."""

    def test_fasta(self, tmp_path: Path) -> None:
        fasta = tmp_path / "seq.fa"
        fasta.write_text(">chr1 test sequence\nACGN\nRT\n>chr2\nA\n")

        records = list(parse(fasta))

        chr1 = [r for r in records if r.chromosome == "1"]
        assert [r.position for r in chr1] == [1, 2, 3, 5, 6]
        assert chr1[3].alleles == ("A", "G")  # IUPAC R
        assert [(r.chromosome, r.position) for r in records if r.chromosome == "2"] == [("2", 1)]

    def test_fasta_invalid_base_skipped(self, tmp_path: Path) -> None:
        fasta = tmp_path / "seq.fa"
        fasta.write_text(">chr1\nAZC\n")

        stream = parse(fasta)
        records = list(stream)

        assert [r.position for r in records] == [1, 3]
        assert stream.stats.skipped == 1

    def test_fastq(self, tmp_path: Path) -> None:
        fastq = tmp_path / "reads.fq"
        fastq.write_text("@read1 extra\nACGT\n+\nII#I\n")

        records = list(parse(fastq))

        assert len(records) == 4
        assert records[0].chromosome == "READ1"
        assert [r.quality for r in records] == [40.0, 40.0, 2.0, 40.0]

    def test_fastq_resyncs_after_bad_record(self, tmp_path: Path) -> None:
        fastq = tmp_path / "reads.fq"
        fastq.write_text("@r1\nACGT\nX\nIIII\n@r2\nAC\n+\nII\n")

        stream = parse(fastq, FileFormat.FASTQ)
        records = list(stream)

        assert [(r.chromosome, r.position) for r in records] == [("R2", 1), ("R2", 2)]
        assert stream.stats.skipped == 1


class TestHlaTypingParser:
    """Tests for HLA typing call files."""

    def test_typing_file(self, tmp_path: Path) -> None:
        calls = tmp_path / "typing.hla"
        calls.write_text(
            "# Athlates output\n"
            "HLA-A*02:01:01\tHLA-A*24:02\n"
            "B 07:02 44:02\n"
            "DRB1*15:01\n"
        )

        sample = load_sample(calls)

        assert len(sample) == 0
        assert sample.metadata.hla_alleles == {
            "A": ("02:01:01", "24:02"),
            "B": ("07:02", "44:02"),
            "DRB1": ("15:01", "15:01"),
        }

    def test_empty_typing_file(self, tmp_path: Path) -> None:
        calls = tmp_path / "typing.hla"
        calls.write_text("# nothing typed\n")

        with pytest.raises(ParseError, match="no allele calls"):
            load_sample(calls, FileFormat.HLA_TYPING)
