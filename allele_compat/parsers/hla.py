"""HLA typing call parser (Athlates-style output).

Accepted line shapes (tab or whitespace separated, '#' comments ignored):

    HLA-A*02:01:01    HLA-A*24:02
    A    02:01    24:02
    DRB1*15:01 DRB1*04:01

The file yields no genotype records; it fills ``metadata.hla_alleles`` so the
HLA module can compare declared typing.
"""

import re
from collections.abc import Iterator
from pathlib import Path

from allele_compat.io_utils import smart_open
from allele_compat.models import GenotypeRecord
from allele_compat.parsers.base import ParseContext

HLA_LOCI = ("A", "B", "C", "DRB1", "DRB3", "DRB4", "DRB5", "DQA1", "DQB1", "DPA1", "DPB1")

HLA_TOKEN = re.compile(
    r"(?:HLA-)?(" + "|".join(HLA_LOCI) + r")\*(\d{2,3}(?::\d{2,3}){0,3})[NLSQ]?",
    re.IGNORECASE,
)
BARE_ALLELE = re.compile(r"^\*?(\d{2,3}(?::\d{2,3}){0,3})[NLSQ]?$")


def parse_hla_tokens(text: str) -> dict[str, list[str]]:
    """Collect ``LOCUS*allele`` tokens from free text, grouped by locus.

    Example:
        >>> parse_hla_tokens("HLA-A*02:01|HLA-A*24:02|B*07:02")
        {"A": ["02:01", "24:02"], "B": ["07:02"]}
    """
    calls: dict[str, list[str]] = {}
    for match in HLA_TOKEN.finditer(text):
        calls.setdefault(match.group(1).upper(), []).append(match.group(2))
    return calls


def _parse_locus_row(fields: list[str]) -> tuple[str, list[str]] | None:
    """Parse a "locus allele1 allele2" row without LOCUS* prefixes."""
    locus = fields[0].upper().removeprefix("HLA-")
    if locus not in HLA_LOCI or len(fields) < 2:
        return None
    alleles = []
    for value in fields[1:]:
        match = BARE_ALLELE.match(value)
        if match is None:
            return None
        alleles.append(match.group(1))
    return locus, alleles


def finalize_hla_calls(calls: dict[str, list[str]], ctx: ParseContext) -> dict[str, tuple[str, ...]]:
    """Reduce collected calls to at most two alleles per locus.

    A single declared allele is read as a homozygous call.
    """
    typing: dict[str, tuple[str, ...]] = {}
    for locus, alleles in calls.items():
        if len(alleles) > 2:
            ctx.warn(f"HLA-{locus}: {len(alleles)} alleles declared, keeping the first two")
            alleles = alleles[:2]
        if len(alleles) == 1:
            alleles = alleles * 2
        typing[locus] = tuple(alleles)
    return typing


def parse_hla_typing(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Read HLA typing calls into the context metadata; yields no records."""
    calls: dict[str, list[str]] = {}

    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            tokens = parse_hla_tokens(line)
            if tokens:
                for locus, alleles in tokens.items():
                    calls.setdefault(locus, []).extend(alleles)
                continue

            row = _parse_locus_row(line.split())
            if row is None:
                ctx.malformed(f"no HLA allele call found in line: {line[:60]!r}")
                continue
            locus, alleles = row
            calls.setdefault(locus, []).extend(alleles)

    if not calls:
        ctx.header_error("HLA typing file contains no allele calls")

    ctx.hla_alleles = finalize_hla_calls(calls, ctx)
    return iter(())
