"""FASTA and FASTQ parsers.

Raw sequence carries no genotype calls, so each base becomes one
homozygous record; IUPAC two-base ambiguity codes become heterozygous
records. N and gap characters advance the position without a record.

FASTA records are keyed by the sequence name (first word of the '>' line).
FASTQ reads have no genomic coordinates: the read name stands in for the
chromosome and positions are offsets within the read, with the Phred+33
base quality as record quality.
"""

from collections.abc import Iterator
from pathlib import Path

from allele_compat.io_utils import smart_open
from allele_compat.models import GenotypeRecord
from allele_compat.parsers.base import ParseContext
from allele_compat.utils import normalize_chromosome

BASE_CALLS: dict[str, tuple[str, str]] = {
    "A": ("A", "A"),
    "C": ("C", "C"),
    "G": ("G", "G"),
    "T": ("T", "T"),
    # IUPAC two-base ambiguity codes
    "R": ("A", "G"),
    "Y": ("C", "T"),
    "S": ("C", "G"),
    "W": ("A", "T"),
    "K": ("G", "T"),
    "M": ("A", "C"),
}

# Characters that advance the position without producing a record
SKIPPED_BASES = set("N-.*BDHV")

PHRED_OFFSET = 33


def _base_record(
    chromosome: str,
    position: int,
    base: str,
    ctx: ParseContext,
    quality: float | None = None,
) -> GenotypeRecord | None:
    base = base.upper()
    if base in SKIPPED_BASES:
        return None
    pair = BASE_CALLS.get(base)
    if pair is None:
        ctx.malformed(f"invalid base {base!r} at {chromosome}:{position}")
        return None
    return GenotypeRecord(
        chromosome=chromosome,
        position=position,
        ref="N",
        alleles=pair,
        quality=quality,
    )


def parse_fasta(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream one record per called base of a FASTA file."""
    chromosome: str | None = None
    position = 0

    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            line = line.strip()
            if not line or line.startswith(";"):
                continue

            if line.startswith(">"):
                name = line[1:].split()
                if not name:
                    ctx.malformed("sequence header without a name")
                    chromosome = None
                    continue
                chromosome = normalize_chromosome(name[0])
                position = 0
                continue

            if chromosome is None:
                ctx.malformed("sequence data outside a named record")
                continue

            for base in line:
                position += 1
                record = _base_record(chromosome, position, base, ctx)
                if record is not None:
                    yield record


def parse_fastq(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream one record per called base of every read in a FASTQ file.

    A malformed 4-line record is dropped as a whole; the parser resumes at
    the next line starting with '@'.
    """
    with smart_open(path) as f:
        lines = (line.rstrip("\r\n") for line in f)
        line_num = 0
        pending: str | None = None

        while True:
            if pending is not None:
                header, pending = pending, None
            else:
                header = next(lines, None)
                line_num += 1
            if header is None:
                break
            ctx.line = line_num
            if not header.strip():
                continue
            if not header.startswith("@"):
                ctx.malformed("expected '@' read header")
                continue

            sequence = next(lines, None)
            separator = next(lines, None)
            qualities = next(lines, None)
            line_num += 3

            if separator is None or not separator.startswith("+"):
                ctx.malformed("expected '+' separator line")
                # Resynchronize on the next header-looking line
                for candidate in (separator, qualities):
                    if candidate is not None and candidate.startswith("@"):
                        pending = candidate
                        break
                continue
            if sequence is None or qualities is None or len(sequence) != len(qualities):
                ctx.malformed("sequence and quality lengths differ")
                continue

            name = header[1:].split()
            if not name:
                ctx.malformed("read header without a name")
                continue
            read_name = normalize_chromosome(name[0])

            for offset, (base, qual) in enumerate(zip(sequence, qualities), 1):
                record = _base_record(
                    read_name, offset, base, ctx, quality=float(ord(qual) - PHRED_OFFSET)
                )
                if record is not None:
                    yield record
