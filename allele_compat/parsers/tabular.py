"""Generic delimited genotype tables (TSV/CSV) with a header row.

Columns are located by name (case insensitive):
    chromosome | chr | chrom          (required)
    position | pos | bp               (required)
    rsid | rs# | snp | id | name
    genotype | gt | result | call     ("AG", "A/G", or "0/1" with ref/alt)
    allele1 + allele2                 (used when there is no genotype column)
    reference | ref
    alternate | alt
    cm | genetic_distance
    quality | qual | score
"""

import csv
from collections.abc import Iterator
from pathlib import Path

from allele_compat.io_utils import smart_open
from allele_compat.models import FileFormat, GenotypeRecord
from allele_compat.parsers.base import ParseContext
from allele_compat.utils import NO_CALL, allele_pair_from_columns, normalize_chromosome, split_genotype

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "chromosome": ("chromosome", "chr", "chrom"),
    "position": ("position", "pos", "bp"),
    "rsid": ("rsid", "rs#", "snp", "id", "name"),
    "genotype": ("genotype", "gt", "result", "call"),
    "allele1": ("allele1", "a1"),
    "allele2": ("allele2", "a2"),
    "reference": ("reference", "ref"),
    "alternate": ("alternate", "alt"),
    "cm": ("cm", "genetic_distance"),
    "quality": ("quality", "qual", "score"),
}

MISSING_CALL = (NO_CALL, NO_CALL)


def map_columns(header: list[str]) -> dict[str, int]:
    """Map canonical column names to indices in a header row.

    Example:
        >>> map_columns(["Chr", "Pos", "Genotype"])
        {"chromosome": 0, "position": 1, "genotype": 2}
    """
    mapping: dict[str, int] = {}
    normalized = [h.strip().strip('"').lower() for h in header]
    for canonical, aliases in COLUMN_ALIASES.items():
        for i, name in enumerate(normalized):
            if name in aliases:
                mapping[canonical] = i
                break
    return mapping


def _decode_genotype(value: str, reference: str, alternates: list[str]) -> tuple[str, str] | None:
    """Decode a genotype cell; VCF-style index genotypes need ref/alt columns.

    Raises:
        ValueError: If the value cannot be read as a genotype
    """
    cleaned = value.strip()
    indices = cleaned.replace("|", "/").split("/")
    if reference and all(i.isdigit() for i in indices) and len(indices) in (1, 2):
        alleles = [reference] + alternates
        try:
            pair = [alleles[int(i)] for i in indices]
        except IndexError:
            raise ValueError(f"allele index out of range in {value!r}")
        return (pair[0], pair[-1])
    if cleaned.replace("/", "").replace("|", "") in ("..", "."):
        return None
    pair = split_genotype(cleaned)
    if pair is None and cleaned.upper() not in ("", "--", "-", "00", "NN", "NC"):
        raise ValueError(f"invalid genotype {value!r}")
    return pair


def parse_table(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream records from a TSV or CSV genotype table."""
    delimiter = "," if ctx.format == FileFormat.CSV else "\t"
    columns: dict[str, int] | None = None

    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            line = line.rstrip("\r\n")
            if not line.strip() or line.startswith("##"):
                continue
            row = next(csv.reader([line], delimiter=delimiter))

            if columns is None:
                row[0] = row[0].lstrip("#")
                columns = map_columns(row)
                if "chromosome" not in columns or "position" not in columns:
                    ctx.header_error("Required columns (chromosome, position) not found")
                continue

            if len(row) <= max(columns.values()):
                ctx.malformed(f"expected {max(columns.values()) + 1} columns, got {len(row)}")
                continue

            def cell(name: str) -> str:
                return row[columns[name]].strip() if name in columns else ""

            reference = cell("reference").upper()
            alternates = [a for a in cell("alternate").upper().split(",") if a and a != "."]
            try:
                position = int(cell("position"))
                cm = float(cell("cm")) if cell("cm") not in ("", ".") else None
                quality = float(cell("quality")) if cell("quality") not in ("", ".") else None
                if "genotype" in columns:
                    pair = _decode_genotype(cell("genotype"), reference, alternates)
                elif "allele1" in columns and "allele2" in columns:
                    pair = allele_pair_from_columns(cell("allele1"), cell("allele2"))
                else:
                    pair = None
            except ValueError as e:
                ctx.malformed(str(e))
                continue
            if position < 1:
                ctx.malformed(f"invalid position: {position}")
                continue

            rsid = cell("rsid")
            yield GenotypeRecord(
                chromosome=normalize_chromosome(cell("chromosome")),
                position=position,
                ref=reference or "N",
                alleles=pair or MISSING_CALL,
                rsid=rsid if rsid and rsid != "." else None,
                quality=quality,
                cm=cm,
            )

    if columns is None:
        ctx.header_error("missing header row")
