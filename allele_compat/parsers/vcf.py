"""VCF and BCF parsers.

Text VCF is streamed line by line (gzip/bgzip transparent). BCF is read
through ``pysam.VariantFile``; its header lines go through the same
meta-line handling as text VCF.

VCF format:
##fileformat=VCFv4.2
##SAMPLE=<ID=P1,Sex=F,BloodType=O+,HLA="A*02:01|A*24:02|B*07:02">
#CHROM  POS  ID      REF  ALT  QUAL  FILTER  INFO   FORMAT  P1
1       100  rs123   A    G    50    PASS    CM=0.1 GT      0/1
"""

import re
from collections.abc import Iterator
from pathlib import Path

import pysam

from allele_compat.io_utils import smart_open
from allele_compat.models import GenotypeRecord
from allele_compat.parsers.base import ParseContext
from allele_compat.parsers.hla import finalize_hla_calls, parse_hla_tokens
from allele_compat.utils import NO_CALL, normalize_chromosome

REQUIRED_COLUMNS = ["CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO"]
GT_SEPARATOR = re.compile(r"[/|]")
STRUCTURED_META = re.compile(r"^##(\w+)=<(.*)>$")


def parse_structured_meta(body: str) -> dict[str, str]:
    """Split the inside of a ``##KEY=<...>`` line into key/value pairs.

    Values may be double-quoted and contain commas.

    Example:
        >>> parse_structured_meta('ID=P1,Sex=F,HLA="A*02:01,A*01:01"')
        {"ID": "P1", "Sex": "F", "HLA": "A*02:01,A*01:01"}
    """
    values: dict[str, str] = {}
    key: list[str] = []
    value: list[str] = []
    in_value = False
    in_quotes = False

    for char in body:
        if in_quotes:
            if char == '"':
                in_quotes = False
            else:
                value.append(char)
        elif char == '"' and in_value:
            in_quotes = True
        elif char == "=" and not in_value:
            in_value = True
        elif char == ",":
            if key:
                values["".join(key).strip()] = "".join(value).strip()
            key, value, in_value = [], [], False
        elif in_value:
            value.append(char)
        else:
            key.append(char)

    if key:
        values["".join(key).strip()] = "".join(value).strip()
    return values


class _MetaCollector:
    """Gathers ##SAMPLE declarations until the selected sample is known."""

    def __init__(self) -> None:
        self.samples: dict[str, dict[str, str]] = {}

    def feed(self, line: str, ctx: ParseContext) -> None:
        line = line.rstrip("\r\n")
        structured = STRUCTURED_META.match(line)
        if structured:
            key, body = structured.groups()
            if key == "SAMPLE":
                fields = parse_structured_meta(body)
                if "ID" in fields:
                    self.samples[fields["ID"]] = fields
            return

        key, _, value = line[2:].partition("=")
        if key in ("reference", "assembly"):
            ctx.set_genome_build(value)
        elif key == "fileDate":
            ctx.extra["file_date"] = value
        elif key == "source":
            ctx.extra["source"] = value

    def apply(self, sample_id: str, ctx: ParseContext) -> None:
        """Copy the ##SAMPLE declaration of ``sample_id`` into the context."""
        declared = self.samples.get(sample_id)
        if declared is None:
            return
        for name, value in declared.items():
            lowered = name.lower()
            if lowered == "sex":
                ctx.set_sex(value)
            elif lowered in ("bloodtype", "blood_type", "abo"):
                ctx.set_blood_type(value)
            elif lowered == "hla":
                calls = parse_hla_tokens(value)
                if calls:
                    ctx.hla_alleles = finalize_hla_calls(calls, ctx)
            elif lowered != "id":
                ctx.extra[name] = value


def _select_sample(samples: list[str], ctx: ParseContext) -> int:
    """Index of the sample column to read."""
    if not samples:
        ctx.header_error("VCF header declares no sample columns")
    wanted = ctx.options.sample_id
    if wanted is None:
        return 0
    if wanted not in samples:
        ctx.header_error(f"Sample {wanted!r} not found in header ({len(samples)} samples)")
    return samples.index(wanted)


def _parse_info_cm(info: str) -> float | None:
    for entry in info.split(";"):
        key, _, value = entry.partition("=")
        if key == "CM" and value:
            return float(value)
    return None


def _decode_gt(gt: str, alleles: list[str]) -> tuple[str, str] | None:
    """Map a GT field to an allele pair; None when an index is out of range."""
    indices = GT_SEPARATOR.split(gt)
    if len(indices) > 2:
        return None
    decoded = []
    for index in indices:
        if index in (".", ""):
            decoded.append(NO_CALL)
            continue
        if not index.isdigit() or int(index) >= len(alleles):
            return None
        decoded.append(alleles[int(index)])

    if len(decoded) == 1:
        # Haploid call (chrY, chrMT, male chrX)
        return decoded[0], decoded[0]
    if NO_CALL in decoded:
        return NO_CALL, NO_CALL
    return decoded[0], decoded[1]


def _parse_data_line(
    parts: list[str],
    sample_col: int,
    ctx: ParseContext,
) -> GenotypeRecord | None:
    if len(parts) <= sample_col:
        ctx.malformed(f"expected at least {sample_col + 1} columns, got {len(parts)}")
        return None

    chrom, pos, rsid, ref, alt, qual, _, info, fmt = parts[:9]
    try:
        position = int(pos)
        quality = None if qual == "." else float(qual)
        cm = _parse_info_cm(info)
    except ValueError as e:
        ctx.malformed(f"invalid numeric field: {e}")
        return None
    if position < 1:
        ctx.malformed(f"invalid position: {pos}")
        return None

    ref = ref.upper()
    alleles = [ref] + [a.upper() for a in alt.split(",") if a != "."]

    keys = fmt.split(":")
    values = parts[sample_col].split(":")
    if "GT" in keys and keys.index("GT") < len(values):
        pair = _decode_gt(values[keys.index("GT")], alleles)
        if pair is None:
            ctx.malformed(f"invalid GT {values[keys.index('GT')]!r} for {len(alleles)} alleles")
            return None
    else:
        pair = (NO_CALL, NO_CALL)

    return GenotypeRecord(
        chromosome=normalize_chromosome(chrom),
        position=position,
        ref=ref,
        alleles=pair,
        rsid=None if rsid == "." else rsid,
        quality=quality,
        cm=cm,
    )


def parse_vcf(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream genotype records for one sample of a text VCF.

    Args:
        path: Path to .vcf or .vcf.gz
        ctx: Parse context (sample selection, malformed policy)

    Yields:
        GenotypeRecord for each data line

    Raises:
        ParseError: Missing #CHROM header, data before the header, unknown
            sample, or malformed data under the "fail" policy
    """
    meta = _MetaCollector()
    sample_col: int | None = None

    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            if line.startswith("##"):
                if sample_col is not None:
                    ctx.header_error("meta-information line after #CHROM header")
                meta.feed(line, ctx)
                continue

            line = line.rstrip("\r\n")
            if line.startswith("#CHROM"):
                header = line.lstrip("#").split("\t")
                if header[:8] != REQUIRED_COLUMNS:
                    ctx.header_error(f"invalid #CHROM header: {line[:80]!r}")
                samples = header[9:] if len(header) > 9 and header[8] == "FORMAT" else []
                index = _select_sample(samples, ctx)
                sample_col = 9 + index
                ctx.sample_id = samples[index]
                meta.apply(samples[index], ctx)
                continue

            if not line:
                continue
            if sample_col is None:
                ctx.header_error("data line before #CHROM header")

            record = _parse_data_line(line.split("\t"), sample_col, ctx)
            if record is not None:
                yield record

    if sample_col is None:
        ctx.header_error("missing #CHROM header line")


def parse_bcf(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream genotype records for one sample of a BCF file via pysam.

    Record numbers stand in for line numbers in errors and warnings.
    """
    try:
        vf = pysam.VariantFile(str(path))
    except (OSError, ValueError) as e:
        ctx.header_error(f"cannot open BCF: {e}")

    with vf:
        meta = _MetaCollector()
        for hrec in vf.header.records:
            meta.feed(str(hrec), ctx)

        samples = list(vf.header.samples)
        index = _select_sample(samples, ctx)
        sample_id = samples[index]
        ctx.sample_id = sample_id
        meta.apply(sample_id, ctx)

        records = iter(vf)
        record_num = 0
        while True:
            try:
                rec = next(records)
            except StopIteration:
                break
            except (OSError, ValueError) as e:
                ctx.line = record_num + 1
                ctx.header_error(f"corrupt BCF record: {e}")
            record_num += 1
            ctx.line = record_num

            call = rec.samples[sample_id]
            gt_alleles = call.alleles if "GT" in rec.format else ()
            if not gt_alleles or None in gt_alleles:
                pair = (NO_CALL, NO_CALL)
            elif len(gt_alleles) == 1:
                pair = (gt_alleles[0].upper(), gt_alleles[0].upper())
            else:
                pair = (gt_alleles[0].upper(), gt_alleles[1].upper())

            cm = rec.info.get("CM") if "CM" in rec.header.info else None
            if isinstance(cm, tuple):
                cm = cm[0] if cm else None
            # BCF stores Float as float32; match the text VCF value
            if cm is not None:
                cm = float(f"{cm:.7g}")

            yield GenotypeRecord(
                chromosome=normalize_chromosome(rec.chrom),
                position=rec.pos,
                ref=rec.ref.upper(),
                alleles=pair,
                rsid=rec.id,
                quality=rec.qual,
                cm=float(cm) if cm is not None else None,
            )
