"""Parsers for direct-to-consumer genotyping array exports.

23andMe (tab separated, genotype in one column):
# rsid  chromosome  position  genotype
rs4477212   1   82154   AA

AncestryDNA (tab separated, one column per allele, 0 = no call):
rsid    chromosome  position    allele1 allele2
rs4477212   1   82154   A   A

FamilyTreeDNA / MyHeritage (quoted CSV):
RSID,CHROMOSOME,POSITION,RESULT
"rs4477212","1","82154","AA"

None of these carry a reference allele, so records use "N".
"""

import csv
from collections.abc import Iterator
from pathlib import Path

from allele_compat.io_utils import smart_open
from allele_compat.models import GenotypeRecord
from allele_compat.parsers.base import ParseContext
from allele_compat.utils import (
    INDEL_CODES,
    MISSING_ALLELES,
    NO_CALL,
    allele_pair_from_columns,
    normalize_chromosome,
    split_genotype,
)

VALID_ALLELES = {"A", "C", "G", "T"} | INDEL_CODES


def _build_record(
    rsid: str,
    chrom: str,
    pos: str,
    pair: tuple[str, str] | None,
    ctx: ParseContext,
) -> GenotypeRecord | None:
    """Validate the shared rsid/chromosome/position columns and build a record."""
    try:
        position = int(pos)
    except ValueError:
        ctx.malformed(f"invalid position: {pos!r}")
        return None
    if position < 1:
        ctx.malformed(f"invalid position: {pos!r}")
        return None
    if not chrom.strip():
        ctx.malformed("empty chromosome")
        return None

    if pair is None:
        pair = (NO_CALL, NO_CALL)
    elif not set(pair) <= VALID_ALLELES:
        ctx.malformed(f"invalid genotype: {''.join(pair)!r}")
        return None

    rsid = rsid.strip()
    return GenotypeRecord(
        chromosome=normalize_chromosome(chrom),
        position=position,
        ref="N",
        alleles=pair,
        rsid=rsid or None,
    )


def _data_rows(path: Path, ctx: ParseContext, delimiter: str) -> Iterator[list[str]]:
    """Yield split data rows, skipping comments and the column header row."""
    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            line = line.rstrip("\r\n")
            if not line.strip() or line.startswith("#"):
                continue
            if line.replace('"', "").lower().startswith("rsid"):
                continue
            if delimiter == ",":
                yield next(csv.reader([line]))
            else:
                yield line.split(delimiter)


def parse_23andme(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream records from a 23andMe raw data file."""
    for parts in _data_rows(path, ctx, "\t"):
        if len(parts) < 4:
            ctx.malformed(f"expected 4 columns, got {len(parts)}")
            continue
        rsid, chrom, pos, genotype = parts[:4]
        pair = split_genotype(genotype)
        if pair is None and genotype.strip().upper() not in MISSING_ALLELES:
            ctx.malformed(f"invalid genotype: {genotype!r}")
            continue
        record = _build_record(rsid, chrom, pos, pair, ctx)
        if record is not None:
            yield record


def parse_ancestry(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream records from an AncestryDNA raw data file."""
    for parts in _data_rows(path, ctx, "\t"):
        if len(parts) < 5:
            ctx.malformed(f"expected 5 columns, got {len(parts)}")
            continue
        rsid, chrom, pos, allele1, allele2 = parts[:5]
        record = _build_record(rsid, chrom, pos, allele_pair_from_columns(allele1, allele2), ctx)
        if record is not None:
            yield record


def parse_ftdna(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream records from a FamilyTreeDNA or MyHeritage CSV export."""
    for parts in _data_rows(path, ctx, ","):
        if len(parts) < 4:
            ctx.malformed(f"expected 4 columns, got {len(parts)}")
            continue
        rsid, chrom, pos, result = parts[:4]
        pair = split_genotype(result)
        if pair is None and result.strip().upper() not in MISSING_ALLELES:
            ctx.malformed(f"invalid genotype: {result!r}")
            continue
        record = _build_record(rsid, chrom, pos, pair, ctx)
        if record is not None:
            yield record
