"""SAM/BAM/CRAM parser: a streaming pileup summary of aligned reads.

This is not a variant caller. Reads are consumed in coordinate order and
base counts are accumulated per reference position; once no later read can
cover a position it is summarized into one record:

- depth below ``options.min_depth`` -> no record
- second most frequent base at >= ``options.het_fraction`` of depth -> het
- otherwise homozygous for the most frequent base

Only positions with at least one aligned base are reported, so memory stays
bounded by read length times coverage. The reference allele is "N" unless
``options.reference_fasta`` is given.
"""

from collections import Counter
from collections.abc import Iterator
from pathlib import Path

import pysam

from allele_compat.models import FileFormat, GenotypeRecord
from allele_compat.parsers.base import ParseContext
from allele_compat.utils import normalize_chromosome

# samtools mpileup default
MIN_BASE_QUALITY = 13

OPEN_MODES = {
    FileFormat.SAM: "r",
    FileFormat.BAM: "rb",
    FileFormat.CRAM: "rc",
}

SKIP_FLAGS = 0x4 | 0x100 | 0x200 | 0x400 | 0x800  # unmapped, secondary, QC fail, dup, supplementary


def summarize_pileup(
    counts: Counter,
    min_depth: int,
    het_fraction: float,
) -> tuple[tuple[str, str], float] | None:
    """Reduce base counts at one position to an allele pair and its read support.

    Returns:
        (allele pair, fraction of reads supporting the called alleles), or
        None when the depth is below ``min_depth``

    Example:
        >>> summarize_pileup(Counter({"A": 6, "G": 4}), 4, 0.2)
        (("A", "G"), 1.0)
    """
    depth = sum(counts.values())
    if depth < min_depth or depth == 0:
        return None
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    top, top_count = ranked[0]
    if len(ranked) > 1 and ranked[1][1] / depth >= het_fraction:
        second, second_count = ranked[1]
        return (top, second), (top_count + second_count) / depth
    return (top, top), top_count / depth


class _ReferenceLookup:
    """Reference base lookup from an optional indexed FASTA."""

    def __init__(self, fasta_path: Path | None) -> None:
        self._fasta = pysam.FastaFile(str(fasta_path)) if fasta_path else None

    def base(self, contig: str, position: int) -> str:
        if self._fasta is None or contig not in self._fasta.references:
            return "N"
        return self._fasta.fetch(contig, position - 1, position).upper() or "N"

    def close(self) -> None:
        if self._fasta is not None:
            self._fasta.close()


def parse_alignments(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream pileup-summary records from a coordinate-sorted SAM/BAM/CRAM.

    Raises:
        ParseError: If the file cannot be opened, declares a non-coordinate
            sort order, or reads appear out of coordinate order
    """
    options = ctx.options
    reference_filename = str(options.reference_fasta) if options.reference_fasta else None
    try:
        af = pysam.AlignmentFile(
            str(path),
            OPEN_MODES[ctx.format],
            reference_filename=reference_filename,
        )
    except (OSError, ValueError) as e:
        ctx.header_error(f"cannot open alignment file: {e}")

    reference = _ReferenceLookup(options.reference_fasta)
    try:
        sort_order = af.header.to_dict().get("HD", {}).get("SO")
        if sort_order in ("unsorted", "queryname"):
            ctx.header_error(f"alignments must be coordinate-sorted (SO:{sort_order})")

        read_group_samples = {rg.get("SM") for rg in af.header.to_dict().get("RG", []) if rg.get("SM")}
        if len(read_group_samples) == 1:
            ctx.sample_id = read_group_samples.pop()

        contig: str | None = None
        finished_contigs: set[str] = set()
        last_start = -1
        pending: dict[int, Counter] = {}

        def flush(before: int | None) -> Iterator[GenotypeRecord]:
            """Summarize pending positions that no later read can reach."""
            ready = sorted(p for p in pending if before is None or p < before)
            chromosome = normalize_chromosome(contig)
            for ref_pos in ready:
                summary = summarize_pileup(pending.pop(ref_pos), options.min_depth, options.het_fraction)
                if summary is None:
                    continue
                pair, support = summary
                yield GenotypeRecord(
                    chromosome=chromosome,
                    position=ref_pos + 1,
                    ref=reference.base(contig, ref_pos + 1),
                    alleles=pair,
                    quality=round(support, 4),
                )

        for read_num, read in enumerate(af.fetch(until_eof=True), 1):
            ctx.line = read_num
            if read.flag & SKIP_FLAGS or read.reference_name is None:
                continue

            if read.reference_name != contig:
                if contig is not None:
                    yield from flush(None)
                    finished_contigs.add(contig)
                if read.reference_name in finished_contigs:
                    ctx.header_error(f"reads for {read.reference_name} are not contiguous")
                contig = read.reference_name
                last_start = -1
            if read.reference_start < last_start:
                ctx.header_error(
                    f"read {read.query_name} at {contig}:{read.reference_start + 1} "
                    "is out of coordinate order"
                )
            last_start = read.reference_start

            yield from flush(read.reference_start)

            sequence = read.query_sequence
            qualities = read.query_qualities
            if sequence is None:
                continue
            for query_pos, ref_pos in read.get_aligned_pairs(matches_only=True):
                if qualities is not None and qualities[query_pos] < MIN_BASE_QUALITY:
                    continue
                base = sequence[query_pos].upper()
                if base == "N":
                    continue
                pending.setdefault(ref_pos, Counter())[base] += 1

        if contig is not None:
            yield from flush(None)
    finally:
        af.close()
        reference.close()
