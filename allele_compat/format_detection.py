"""Genetic data format auto-detection.

Detection reads a bounded prefix of the file (``SNIFF_BYTES``) and never
the whole file. Explicit magic bytes and headers win; the file extension is
only a fallback.

Order:
1. Binary magic: CRAM, PLINK .bed, gzip/BGZF containers (BAM, BCF, or
   compressed text, which is sniffed after inflating its head)
2. Text headers: VCF, GFF/GVF, SAM, FASTQ, FASTA, consumer array exports,
   HLA typing calls, UCSC BED, PLINK PED, generic delimited tables
3. Extension table
"""

import re
from dataclasses import dataclass
from pathlib import Path

from allele_compat.exceptions import UnrecognizedFormat
from allele_compat.io_utils import GZIP_MAGIC, decompress_prefix, read_prefix
from allele_compat.models import FileFormat

SNIFF_BYTES = 8 * 1024

CRAM_MAGIC = b"CRAM"
BAM_MAGIC = b"BAM\x01"
BCF_MAGIC = b"BCF\x02"
PLINK_BED_MAGIC = b"\x6c\x1b\x01"

SAM_HEADER_TAGS = ("@HD\t", "@SQ\t", "@RG\t", "@PG\t", "@CO\t")

RSID_PATTERN = re.compile(r"^(rs|i)\d+$", re.IGNORECASE)
HLA_ALLELE_PATTERN = re.compile(r"(HLA-)?[A-Z]+[0-9]*\*\d{2,3}(:\d{2,3}){0,3}[A-Z]?", re.IGNORECASE)
CIGAR_PATTERN = re.compile(r"^(\*|([0-9]+[MIDNSHP=X])+)$")
SEQUENCE_PATTERN = re.compile(r"^(\*|[A-Za-z=.]+)$")

CHROMOSOME_COLUMNS = {"chromosome", "chr", "chrom"}
POSITION_COLUMNS = {"position", "pos", "bp"}

# Extension fallback, checked after stripping a trailing .gz/.bgz
EXTENSION_FORMATS: dict[str, FileFormat] = {
    ".vcf": FileFormat.VCF,
    ".bcf": FileFormat.BCF,
    ".ped": FileFormat.PLINK_PED,
    ".map": FileFormat.PLINK_PED,
    ".bed": FileFormat.BED,
    ".bim": FileFormat.PLINK_BED,
    ".fam": FileFormat.PLINK_BED,
    ".fa": FileFormat.FASTA,
    ".fasta": FileFormat.FASTA,
    ".fna": FileFormat.FASTA,
    ".fq": FileFormat.FASTQ,
    ".fastq": FileFormat.FASTQ,
    ".gff": FileFormat.GFF,
    ".gff3": FileFormat.GFF,
    ".gvf": FileFormat.GVF,
    ".sam": FileFormat.SAM,
    ".bam": FileFormat.BAM,
    ".cram": FileFormat.CRAM,
    ".csv": FileFormat.CSV,
    ".tsv": FileFormat.TSV,
    ".hla": FileFormat.HLA_TYPING,
}

FORMAT_DESCRIPTIONS: dict[FileFormat, str] = {
    FileFormat.VCF: "Variant Call Format (.vcf, .vcf.gz)",
    FileFormat.BCF: "Binary VCF (.bcf)",
    FileFormat.TWENTYTHREE_AND_ME: "23andMe raw data (.txt)",
    FileFormat.ANCESTRY_DNA: "AncestryDNA raw data (.txt)",
    FileFormat.FTDNA: "FamilyTreeDNA raw data (.csv)",
    FileFormat.MYHERITAGE: "MyHeritage raw data (.csv)",
    FileFormat.PLINK_PED: "PLINK text fileset (.ped/.map)",
    FileFormat.PLINK_BED: "PLINK binary fileset (.bed/.bim/.fam)",
    FileFormat.FASTA: "FASTA sequence (.fa, .fasta, .fna)",
    FileFormat.FASTQ: "FASTQ reads (.fq, .fastq)",
    FileFormat.BED: "UCSC BED intervals (.bed)",
    FileFormat.GFF: "General Feature Format (.gff, .gff3)",
    FileFormat.GVF: "Genome Variation Format (.gvf)",
    FileFormat.SAM: "Sequence Alignment/Map (.sam)",
    FileFormat.BAM: "Binary alignments (.bam)",
    FileFormat.CRAM: "Reference-compressed alignments (.cram)",
    FileFormat.TSV: "Tab-separated genotype table (.tsv)",
    FileFormat.CSV: "Comma-separated genotype table (.csv)",
    FileFormat.HLA_TYPING: "HLA typing calls, e.g. Athlates output (.hla, .txt)",
}


def supported_formats() -> list[tuple[str, str]]:
    """List supported formats as (tag, description) pairs."""
    return [(fmt.name.lower(), FORMAT_DESCRIPTIONS[fmt]) for fmt in FileFormat]


def _strip_compression(path: Path) -> Path:
    """Strip .gz/.bgz extension if present."""
    if path.suffix.lower() in (".gz", ".bgz"):
        return path.with_suffix("")
    return path


def detect_from_extension(path: Path) -> FileFormat | None:
    """Map a file extension to a format tag.

    Example:
        >>> detect_from_extension(Path("sample.vcf.gz"))
        FileFormat.VCF
    """
    suffix = _strip_compression(path).suffix.lower()
    return EXTENSION_FORMATS.get(suffix)


def _has_plink_bed_companion(path: Path) -> bool:
    """Whether a .bim/.fam path sits next to a PLINK .bed carrying the magic bytes."""
    bed_path = _strip_compression(path).with_suffix(".bed")
    if not bed_path.exists():
        return False
    return read_prefix(bed_path, 3) == PLINK_BED_MAGIC


def _detect_binary(raw: bytes) -> FileFormat | None:
    if raw.startswith(CRAM_MAGIC):
        return FileFormat.CRAM
    if raw.startswith(PLINK_BED_MAGIC):
        return FileFormat.PLINK_BED
    return None


def _data_lines(lines: list[str]) -> list[str]:
    return [line for line in lines if line.strip() and not line.startswith("#")]


def _is_int(value: str) -> bool:
    return value.strip().lstrip("-").isdigit()


def _header_columns(line: str, delimiter: str) -> set[str]:
    return {col.strip().strip('"').lower() for col in line.lstrip("#").split(delimiter)}


def _sniff_text(lines: list[str], path: Path) -> FileFormat | None:
    """Classify a text file from its first lines."""
    if not lines:
        return None
    first = lines[0]

    if first.startswith("##fileformat=VCF"):
        return FileFormat.VCF
    if first.startswith("##gvf-version"):
        return FileFormat.GVF
    if first.startswith("##gff-version"):
        return FileFormat.GFF
    if first.startswith(SAM_HEADER_TAGS):
        return FileFormat.SAM
    if first.startswith("@") and len(lines) >= 3 and lines[2].startswith("+"):
        return FileFormat.FASTQ
    if first.startswith(">"):
        return FileFormat.FASTA

    # Consumer array exports announce themselves in comment banners
    comments = " ".join(line.lower() for line in lines if line.startswith("#"))
    if "23andme" in comments:
        return FileFormat.TWENTYTHREE_AND_ME
    if "ancestrydna" in comments:
        return FileFormat.ANCESTRY_DNA
    if "myheritage" in comments:
        return FileFormat.MYHERITAGE

    for line in lines:
        lowered = line.lstrip("#").strip().lower()
        if lowered.replace(" ", "").startswith("rsid\tchromosome\tposition\tgenotype"):
            return FileFormat.TWENTYTHREE_AND_ME
        if lowered.startswith("rsid\tchromosome\tposition\tallele1\tallele2"):
            return FileFormat.ANCESTRY_DNA
        if lowered.replace('"', "").startswith("rsid,chromosome,position,result"):
            return FileFormat.FTDNA

    data = _data_lines(lines)
    if not data:
        return None

    if all(HLA_ALLELE_PATTERN.search(line) for line in data):
        return FileFormat.HLA_TYPING

    if first.startswith(("track", "browser")):
        return FileFormat.BED

    sample = data[0]
    tab_fields = sample.split("\t")

    # PLINK PED: FID IID PAT MAT SEX PHENO a1 a2 ...
    ws_fields = sample.split()
    if (
        len(ws_fields) >= 6
        and (len(ws_fields) - 6) % 2 == 0
        and ws_fields[4] in {"0", "1", "2"}
        and (path.suffix.lower() == ".ped" or path.with_suffix(".map").exists())
    ):
        return FileFormat.PLINK_PED

    # Headerless SAM: QNAME FLAG RNAME POS MAPQ CIGAR RNEXT PNEXT TLEN SEQ QUAL
    if (
        len(tab_fields) >= 11
        and _is_int(tab_fields[1])
        and _is_int(tab_fields[3])
        and CIGAR_PATTERN.match(tab_fields[5])
        and SEQUENCE_PATTERN.match(tab_fields[9])
    ):
        return FileFormat.SAM

    # UCSC BED: chrom start end [name score ...]
    if (
        len(tab_fields) >= 3
        and not RSID_PATTERN.match(tab_fields[0])
        and _is_int(tab_fields[1])
        and _is_int(tab_fields[2])
        and int(tab_fields[2]) > int(tab_fields[1])
    ):
        return FileFormat.BED

    # Generic genotype tables with a header row
    for delimiter, fmt in (("\t", FileFormat.TSV), (",", FileFormat.CSV)):
        columns = _header_columns(lines[0], delimiter)
        if columns & CHROMOSOME_COLUMNS and columns & POSITION_COLUMNS:
            return fmt

    return None


def detect_format(path: Path | str, prefix: bytes | None = None) -> FileFormat:
    """Detect the format of a genetic data file.

    Args:
        path: Path to the file
        prefix: Optional raw byte prefix already read by the caller; when
            omitted, at most ``SNIFF_BYTES`` are read from the file

    Returns:
        Detected FileFormat

    Raises:
        UnrecognizedFormat: If neither content nor extension identify the file
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if prefix is None:
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")
        prefix = read_prefix(path, SNIFF_BYTES)
    raw = prefix[:SNIFF_BYTES]

    if path.suffix.lower() in (".bim", ".fam") and _has_plink_bed_companion(path):
        return FileFormat.PLINK_BED

    binary = _detect_binary(raw)
    if binary is not None:
        return binary

    if raw.startswith(GZIP_MAGIC):
        head = decompress_prefix(raw, SNIFF_BYTES)
        if head.startswith(BAM_MAGIC):
            return FileFormat.BAM
        if head.startswith(BCF_MAGIC):
            return FileFormat.BCF
        text = head
    else:
        text = raw

    if b"\x00" not in text[:1024]:
        decoded = text.decode("utf-8", errors="replace")
        lines = decoded.splitlines()
        # Last line of a truncated prefix may be cut mid-record
        if len(text) >= SNIFF_BYTES and len(lines) > 1:
            lines = lines[:-1]
        sniffed = _sniff_text(lines, path)
        if sniffed is not None:
            return sniffed

    by_extension = detect_from_extension(path)
    if by_extension is not None:
        return by_extension

    raise UnrecognizedFormat(path, "no known header, magic bytes or extension")


@dataclass(slots=True)
class PlinkFileSet:
    """A complete set of PLINK files.

    Attributes:
        format: PLINK_PED or PLINK_BED
        prefix: Common prefix for all files (e.g., /data/study)
        variant_file: Path to .map or .bim
        genotype_file: Path to .ped or .bed
        sample_file: Path to .fam (None for the text fileset, where the
            .ped carries the sample columns)
    """

    format: FileFormat
    prefix: Path
    variant_file: Path
    genotype_file: Path
    sample_file: Path | None


def _with_extension(prefix: Path, extension: str) -> Path:
    # Path.with_suffix would clobber dotted prefixes like "study.v2"
    return prefix.parent / f"{prefix.name}{extension}"


def resolve_plink_fileset(path: Path, fmt: FileFormat) -> PlinkFileSet:
    """Resolve the complete PLINK fileset from any one of its files.

    Args:
        path: Path to a .ped/.map or .bed/.bim/.fam file
        fmt: PLINK_PED or PLINK_BED

    Returns:
        PlinkFileSet with all file paths

    Raises:
        FileNotFoundError: If a required companion file doesn't exist
        ValueError: If fmt is not a PLINK format
    """
    prefix = _strip_compression(path).with_suffix("")

    if fmt == FileFormat.PLINK_PED:
        fileset = PlinkFileSet(
            format=fmt,
            prefix=prefix,
            variant_file=_with_extension(prefix, ".map"),
            genotype_file=_with_extension(prefix, ".ped"),
            sample_file=None,
        )
    elif fmt == FileFormat.PLINK_BED:
        fileset = PlinkFileSet(
            format=fmt,
            prefix=prefix,
            variant_file=_with_extension(prefix, ".bim"),
            genotype_file=_with_extension(prefix, ".bed"),
            sample_file=_with_extension(prefix, ".fam"),
        )
    else:
        raise ValueError(f"Not a PLINK format: {fmt.name}")

    # Validate required files exist
    if not fileset.variant_file.exists():
        raise FileNotFoundError(f"Variant file not found: {fileset.variant_file}")
    if not fileset.genotype_file.exists():
        raise FileNotFoundError(f"Genotype file not found: {fileset.genotype_file}")
    if fileset.sample_file is not None and not fileset.sample_file.exists():
        raise FileNotFoundError(f"Sample file not found: {fileset.sample_file}")

    return fileset
