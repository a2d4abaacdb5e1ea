"""UCSC BED and GFF3/GVF parsers.

BED (0-based half-open, tab separated):
chrom  start  end  [name]  [score]
chr1   99     100  A/G     60

The name column is read as a genotype ("A/G", "AG") or, failing that, as
an rsID; the record sits on the first base of the interval.

GFF3/GVF (1-based, tab separated, 9 columns, header required):
##gvf-version 1.10
chr1  source  SNV  100  100  .  +  .  ID=rs123;Variant_seq=A,G;Reference_seq=A;Zygosity=heterozygous

Only features carrying Variant_seq become records.
"""

import re
from collections.abc import Iterator
from pathlib import Path
from urllib.parse import unquote

from allele_compat.io_utils import smart_open
from allele_compat.models import FileFormat, GenotypeRecord
from allele_compat.parsers.base import ParseContext
from allele_compat.utils import NO_CALL, normalize_chromosome, split_genotype

RSID = re.compile(r"^rs\d+$", re.IGNORECASE)
DNA = set("ACGT")
MISSING_CALL = (NO_CALL, NO_CALL)


def _parse_score(value: str) -> float | None:
    if value in (".", ""):
        return None
    return float(value)


def parse_bed_intervals(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream one record per interval of a UCSC BED file."""
    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            line = line.rstrip("\r\n")
            if not line.strip() or line.startswith(("#", "track", "browser")):
                continue

            parts = line.split("\t")
            if len(parts) < 3:
                ctx.malformed(f"expected at least 3 columns, got {len(parts)}")
                continue

            try:
                start = int(parts[1])
                end = int(parts[2])
                quality = _parse_score(parts[4]) if len(parts) > 4 else None
            except ValueError as e:
                ctx.malformed(f"invalid numeric field: {e}")
                continue
            if start < 0 or end <= start:
                ctx.malformed(f"invalid interval {start}-{end}")
                continue

            name = parts[3].strip() if len(parts) > 3 else ""
            rsid = None
            pair = split_genotype(name) if name else None
            if pair is None or not set(pair) <= DNA:
                pair = MISSING_CALL
                if RSID.match(name):
                    rsid = name

            yield GenotypeRecord(
                chromosome=normalize_chromosome(parts[0]),
                position=start + 1,
                ref="N",
                alleles=pair,
                rsid=rsid,
                quality=quality,
            )


def parse_attributes(column: str) -> dict[str, str]:
    """Parse a GFF3 attribute column (``key=value;key=value``, URL-escaped)."""
    attributes = {}
    for entry in column.strip().split(";"):
        if not entry:
            continue
        key, sep, value = entry.partition("=")
        if not sep:
            continue
        attributes[unquote(key.strip())] = unquote(value.strip())
    return attributes


def _variant_alleles(attributes: dict[str, str]) -> tuple[str, tuple[str, str]]:
    """Derive (reference, allele pair) from Variant_seq/Reference_seq/Zygosity.

    Raises:
        ValueError: If Variant_seq lists more than two alleles
    """
    reference = attributes.get("Reference_seq", "N").upper()
    variants = [v.upper() for v in attributes["Variant_seq"].split(",") if v]
    # "~" stands for the reference sequence
    variants = [reference if v == "~" else v for v in variants]
    zygosity = attributes.get("Zygosity", "").lower()

    if not variants or len(variants) > 2:
        raise ValueError(f"expected 1 or 2 Variant_seq alleles, got {len(variants)}")
    if len(variants) == 2:
        return reference, (variants[0], variants[1])
    if zygosity == "heterozygous":
        return reference, (reference, variants[0])
    return reference, (variants[0], variants[0])


def _feature_rsid(attributes: dict[str, str]) -> str | None:
    feature_id = attributes.get("ID", "")
    if RSID.match(feature_id):
        return feature_id
    for xref in attributes.get("Dbxref", "").split(","):
        _, _, accession = xref.partition(":")
        if RSID.match(accession):
            return accession
    return None


def parse_gff(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream variant features of a GFF3 or GVF file."""
    expected = "##gvf-version" if ctx.format == FileFormat.GVF else "##gff-version"
    seen_header = False

    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            line = line.rstrip("\r\n")

            if not seen_header:
                if not line.strip():
                    continue
                if not line.startswith(expected):
                    ctx.header_error(f"file must start with {expected}")
                seen_header = True
                continue

            if line.startswith("##FASTA"):
                break
            if line.startswith("##"):
                key, _, value = line[2:].partition(" ")
                if key == "genome-build":
                    ctx.set_genome_build(value)
                elif key == "individual-id":
                    ctx.sample_id = value.strip() or ctx.sample_id
                continue
            if not line.strip() or line.startswith("#"):
                continue

            parts = line.split("\t")
            if len(parts) != 9:
                ctx.malformed(f"expected 9 columns, got {len(parts)}")
                continue

            attributes = parse_attributes(parts[8])
            if "Variant_seq" not in attributes:
                continue

            try:
                start = int(parts[3])
                end = int(parts[4])
                quality = _parse_score(parts[5])
                reference, pair = _variant_alleles(attributes)
            except ValueError as e:
                ctx.malformed(str(e))
                continue
            if start < 1 or end < start:
                ctx.malformed(f"invalid feature coordinates {start}-{end}")
                continue

            yield GenotypeRecord(
                chromosome=normalize_chromosome(parts[0]),
                position=start,
                ref=reference,
                alleles=pair,
                rsid=_feature_rsid(attributes),
                quality=quality,
            )

    if not seen_header:
        ctx.header_error(f"missing {expected} header")
