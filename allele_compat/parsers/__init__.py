"""Unified parser interface for every supported genetic data format.

Format selection is a plain dispatch table keyed by the detected
FileFormat. Each entry pairs the parser generator with its format family's
default malformed-line policy.
"""

import logging
from pathlib import Path

from allele_compat.config import ParseOptions
from allele_compat.format_detection import detect_format
from allele_compat.models import FileFormat
from allele_compat.parsers.alignment import parse_alignments
from allele_compat.parsers.base import ParseContext, ParserFn, ParseStats, RecordStream
from allele_compat.parsers.consumer import parse_23andme, parse_ancestry, parse_ftdna
from allele_compat.parsers.hla import parse_hla_typing
from allele_compat.parsers.intervals import parse_bed_intervals, parse_gff
from allele_compat.parsers.plink import parse_plink_bed, parse_plink_ped
from allele_compat.parsers.sequence import parse_fasta, parse_fastq
from allele_compat.parsers.tabular import parse_table
from allele_compat.parsers.vcf import parse_bcf, parse_vcf
from allele_compat.sample import Sample

__all__ = [
    "PARSERS",
    "DEFAULT_POLICY",
    "ParseStats",
    "RecordStream",
    "parse",
    "load_sample",
]

logger = logging.getLogger(__name__)

PARSERS: dict[FileFormat, ParserFn] = {
    FileFormat.VCF: parse_vcf,
    FileFormat.BCF: parse_bcf,
    FileFormat.TWENTYTHREE_AND_ME: parse_23andme,
    FileFormat.ANCESTRY_DNA: parse_ancestry,
    FileFormat.FTDNA: parse_ftdna,
    FileFormat.MYHERITAGE: parse_ftdna,
    FileFormat.PLINK_PED: parse_plink_ped,
    FileFormat.PLINK_BED: parse_plink_bed,
    FileFormat.FASTA: parse_fasta,
    FileFormat.FASTQ: parse_fastq,
    FileFormat.BED: parse_bed_intervals,
    FileFormat.GFF: parse_gff,
    FileFormat.GVF: parse_gff,
    FileFormat.SAM: parse_alignments,
    FileFormat.BAM: parse_alignments,
    FileFormat.CRAM: parse_alignments,
    FileFormat.TSV: parse_table,
    FileFormat.CSV: parse_table,
    FileFormat.HLA_TYPING: parse_hla_typing,
}

# Raw sequence and consumer exports skip bad lines; structured formats fail
DEFAULT_POLICY: dict[FileFormat, str] = {
    fmt: "fail" for fmt in FileFormat
} | {
    FileFormat.FASTA: "skip",
    FileFormat.FASTQ: "skip",
    FileFormat.TWENTYTHREE_AND_ME: "skip",
    FileFormat.ANCESTRY_DNA: "skip",
    FileFormat.FTDNA: "skip",
    FileFormat.MYHERITAGE: "skip",
}


def parse(
    path: Path | str,
    fmt: FileFormat | None = None,
    options: ParseOptions | None = None,
) -> RecordStream:
    """Open a lazy record stream over a genetic data file.

    Nothing is read until the stream is iterated (apart from the format
    sniff when ``fmt`` is omitted).

    Args:
        path: Path to the file (gzip/bgzip transparent)
        fmt: Format tag; detected from the file when None
        options: Parse options (malformed-line policy, sample selection)

    Returns:
        RecordStream yielding GenotypeRecord

    Raises:
        UnrecognizedFormat: If fmt is None and the format cannot be detected
        FileNotFoundError: If the file does not exist
        ParseError: While iterating, for malformed input

    Example:
        >>> stream = parse(Path("genome.txt"))
        >>> for record in stream:
        ...     print(record.chromosome, record.position, record.genotype)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if fmt is None:
        fmt = detect_format(path)
        logger.debug(f"Detected {path.name} as {fmt.name}")

    options = options or ParseOptions()
    context = ParseContext(path, fmt, options, DEFAULT_POLICY[fmt])
    return RecordStream(path, PARSERS[fmt], context)


def load_sample(
    path: Path | str,
    fmt: FileFormat | None = None,
    options: ParseOptions | None = None,
) -> Sample:
    """Detect, parse and fully materialize a Sample from one file.

    Raises:
        UnrecognizedFormat: If the format cannot be detected
        ParseError: For malformed input under the active policy
    """
    stream = parse(path, fmt, options)
    records = list(stream)
    sample = Sample.from_records(
        sample_id=stream.sample_id,
        source_format=stream.format,
        records=records,
        metadata=stream.metadata,
        source_path=stream.path,
    )
    logger.info(
        f"Loaded {sample.sample_id} from {stream.path.name} ({stream.format.name}): "
        f"{sample.metrics.record_count} records, call rate {sample.metrics.call_rate:.3f}"
    )
    return sample
