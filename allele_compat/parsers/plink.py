"""PLINK text (.ped/.map) and binary (.bed/.bim/.fam) fileset parsers.

MAP format (whitespace separated, no header):
chromosome  rsID  genetic_distance_cM  position

BIM format (whitespace separated, no header):
chromosome  rsID  genetic_distance_cM  position  allele1  allele2

PED/FAM rows start with: FID IID PAT MAT SEX PHENOTYPE
(PED rows continue with two allele columns per MAP variant).

The binary .bed is SNP-major: after the 3 magic bytes, each variant
occupies ceil(n_samples / 4) bytes with 2 bits per sample, lowest bits
first. Only one variant block is held in memory at a time.
"""

from collections.abc import Iterator
from pathlib import Path

from allele_compat.format_detection import PLINK_BED_MAGIC, resolve_plink_fileset
from allele_compat.io_utils import smart_open
from allele_compat.models import FileFormat, GenotypeRecord
from allele_compat.parsers.base import ParseContext
from allele_compat.utils import NO_CALL, allele_pair_from_columns, normalize_chromosome

# PLINK's numeric allele coding (--allele1234)
NUMERIC_ALLELES = {"1": "A", "2": "C", "3": "G", "4": "T"}

MISSING_CALL = (NO_CALL, NO_CALL)


def _select_individual(path: Path, ctx: ParseContext) -> list[str]:
    """Find the requested individual's row in a .ped or .fam file.

    Matches ``options.sample_id`` against IID or "FID_IID"; without a
    sample_id the first individual is used.
    """
    wanted = ctx.options.sample_id
    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            fields = line.split()
            if not fields:
                continue
            if len(fields) < 6:
                ctx.line = line_num
                ctx.header_error(f"{path.name}: expected at least 6 columns, got {len(fields)}")
            fid, iid = fields[0], fields[1]
            if wanted is None or wanted in (iid, f"{fid}_{iid}"):
                ctx.line = line_num
                return fields
    if wanted is not None:
        ctx.header_error(f"Sample {wanted!r} not found in {path.name}")
    ctx.header_error(f"{path.name} contains no individuals")


def _iter_variant_rows(path: Path, ctx: ParseContext) -> Iterator[list[str]]:
    """Yield the non-empty rows of a .map/.bim file, tracking the line number.

    Short rows are yielded too: callers must still consume the matching
    genotype data before rejecting them.
    """
    with smart_open(path) as f:
        for line_num, line in enumerate(f, 1):
            ctx.line = line_num
            fields = line.split()
            if fields:
                yield fields


def _variant_position(fields: list[str], pos_col: int, ctx: ParseContext) -> tuple[int, float | None] | None:
    """Parse the position and cM columns; None for excluded or malformed rows."""
    try:
        position = int(fields[pos_col])
        cm = float(fields[2]) if pos_col == 3 else None
    except ValueError as e:
        ctx.malformed(f"invalid numeric field: {e}")
        return None
    if position < 0:
        # Negative positions mark variants excluded by PLINK
        return None
    if position == 0:
        ctx.malformed("position 0 is not a valid 1-based position")
        return None
    # A genetic distance of exactly 0 means "not provided"
    return position, (cm if cm else None)


def _ped_allele(value: str) -> str:
    return NUMERIC_ALLELES.get(value, value)


def parse_plink_ped(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream one individual's genotypes from a .ped/.map fileset.

    Only the selected individual's PED row is held in memory; the MAP file
    is streamed alongside it.
    """
    try:
        fileset = resolve_plink_fileset(path, FileFormat.PLINK_PED)
    except FileNotFoundError as e:
        ctx.header_error(str(e))

    individual = _select_individual(fileset.genotype_file, ctx)
    fid, iid, _, _, sex = individual[:5]
    ctx.sample_id = iid
    ctx.set_sex(sex)
    if fid != iid:
        ctx.extra["family_id"] = fid

    genotypes = individual[6:]
    if len(genotypes) % 2:
        ctx.header_error(f"{fileset.genotype_file.name}: odd number of allele columns")
    n_variants = len(genotypes) // 2

    variant_index = 0
    for fields in _iter_variant_rows(fileset.variant_file, ctx):
        if variant_index >= n_variants:
            ctx.header_error(
                f"{fileset.variant_file.name} lists more variants than "
                f"{fileset.genotype_file.name} has genotype pairs ({n_variants})"
            )
        a1 = genotypes[2 * variant_index]
        a2 = genotypes[2 * variant_index + 1]
        variant_index += 1

        if len(fields) < 3:
            ctx.malformed(f"{fileset.variant_file.name}: expected 4 columns, got {len(fields)}")
            continue

        # 3-column MAP files omit the genetic distance
        pos_col = 3 if len(fields) >= 4 else 2
        parsed = _variant_position(fields, pos_col, ctx)
        if parsed is None:
            continue
        position, cm = parsed

        pair = allele_pair_from_columns(_ped_allele(a1), _ped_allele(a2))
        yield GenotypeRecord(
            chromosome=normalize_chromosome(fields[0]),
            position=position,
            ref="N",
            alleles=pair or MISSING_CALL,
            rsid=fields[1] if fields[1] != "." else None,
            cm=cm,
        )

    if variant_index != n_variants:
        ctx.header_error(
            f"{fileset.genotype_file.name} has {n_variants} genotype pairs but "
            f"{fileset.variant_file.name} lists {variant_index} variants"
        )


def _decode_bed_call(code: int, allele1: str, allele2: str) -> tuple[str, str]:
    """Decode a 2-bit PLINK genotype code against the BIM alleles."""
    if code == 0b00:
        pair = (allele1, allele1)
    elif code == 0b10:
        pair = (allele1, allele2)
    elif code == 0b11:
        pair = (allele2, allele2)
    else:
        return MISSING_CALL  # 0b01
    return allele_pair_from_columns(*pair) or MISSING_CALL


def parse_plink_bed(path: Path, ctx: ParseContext) -> Iterator[GenotypeRecord]:
    """Stream one individual's genotypes from a .bed/.bim/.fam fileset.

    The .bim is streamed in step with the .bed; for each variant only the
    byte holding the selected individual is decoded.
    """
    try:
        fileset = resolve_plink_fileset(path, FileFormat.PLINK_BED)
    except FileNotFoundError as e:
        ctx.header_error(str(e))

    # Locate the individual and count the samples in the .fam
    wanted = ctx.options.sample_id
    sample_index: int | None = None
    n_samples = 0
    with smart_open(fileset.sample_file) as f:
        for line_num, line in enumerate(f, 1):
            fields = line.split()
            if not fields:
                continue
            if len(fields) < 6:
                ctx.line = line_num
                ctx.header_error(f"{fileset.sample_file.name}: expected 6 columns, got {len(fields)}")
            if sample_index is None and (wanted is None or wanted in (fields[1], f"{fields[0]}_{fields[1]}")):
                sample_index = n_samples
                ctx.sample_id = fields[1]
                ctx.set_sex(fields[4])
                if fields[0] != fields[1]:
                    ctx.extra["family_id"] = fields[0]
            n_samples += 1

    if sample_index is None:
        if wanted is not None:
            ctx.header_error(f"Sample {wanted!r} not found in {fileset.sample_file.name}")
        ctx.header_error(f"{fileset.sample_file.name} contains no individuals")

    block_size = (n_samples + 3) // 4
    byte_offset = sample_index // 4
    bit_shift = 2 * (sample_index % 4)

    with open(fileset.genotype_file, "rb") as bed:
        magic = bed.read(3)
        if magic[:2] != PLINK_BED_MAGIC[:2]:
            ctx.line = 0
            ctx.header_error(f"{fileset.genotype_file.name}: not a PLINK .bed file")
        if magic[2:3] != PLINK_BED_MAGIC[2:3]:
            ctx.line = 0
            ctx.header_error(f"{fileset.genotype_file.name}: individual-major .bed files are not supported")

        for fields in _iter_variant_rows(fileset.variant_file, ctx):
            block = bed.read(block_size)
            if len(block) < block_size:
                ctx.header_error(
                    f"{fileset.genotype_file.name} ends before variant at "
                    f"{fileset.variant_file.name} line {ctx.line}"
                )

            if len(fields) < 6:
                ctx.malformed(f"{fileset.variant_file.name}: expected 6 columns, got {len(fields)}")
                continue
            parsed = _variant_position(fields, 3, ctx)
            if parsed is None:
                continue
            position, cm = parsed

            code = (block[byte_offset] >> bit_shift) & 0b11
            yield GenotypeRecord(
                chromosome=normalize_chromosome(fields[0]),
                position=position,
                ref="N",
                alleles=_decode_bed_call(code, fields[4], fields[5]),
                rsid=fields[1] if fields[1] != "." else None,
                cm=cm,
            )

        if bed.read(1):
            ctx.header_error(
                f"{fileset.genotype_file.name} has more variant blocks than "
                f"{fileset.variant_file.name} lists"
            )
