"""Packaged reference tables for disease risk and pharmacogenomic matching.

Tables are tab-separated files loaded with pandas, validated, and turned
into tuples of immutable rows so concurrent tasks can share them. Loaded
tables are cached per path.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from importlib.resources import files
from pathlib import Path

import pandas as pd

from allele_compat.models import DosingImplication, GenotypeRecord
from allele_compat.utils import complement, is_palindromic, normalize_chromosome

logger = logging.getLogger(__name__)

DISEASE_COLUMNS = [
    "variant_id", "gene", "condition", "chromosome", "position",
    "effect_allele", "other_allele", "effect", "odds_ratio",
]
PGX_COLUMNS = [
    "variant_id", "gene", "star_allele", "drug", "chromosome", "position",
    "effect_allele", "other_allele", "het_implication", "hom_implication",
]

VALID_EFFECTS = {"risk", "protective"}


@dataclass(frozen=True)
class ReferenceVariant:
    """Coordinates and alleles shared by both table kinds."""

    variant_id: str
    gene: str
    chromosome: str
    position: int
    effect_allele: str
    other_allele: str

    def effect_copies(self, record: GenotypeRecord) -> int | None:
        """Count effect-allele copies in a called record.

        Alleles are compared as given, then on the complementary strand
        for non-palindromic SNPs. Returns None when the observed alleles
        fit neither strand.
        """
        expected = {self.effect_allele, self.other_allele}
        observed = record.alleles
        if set(observed) <= expected:
            return observed.count(self.effect_allele)
        if is_palindromic(self.effect_allele, self.other_allele):
            return None
        flipped = tuple(complement(a) for a in observed)
        if set(flipped) <= expected:
            return flipped.count(self.effect_allele)
        return None


@dataclass(frozen=True)
class DiseaseVariant(ReferenceVariant):
    condition: str = ""
    effect: str = "risk"
    odds_ratio: float | None = None


@dataclass(frozen=True)
class PharmacogenomicVariant(ReferenceVariant):
    drug: str = ""
    star_allele: str | None = None
    het_implication: DosingImplication = DosingImplication.NORMAL
    hom_implication: DosingImplication = DosingImplication.NORMAL

    def dosing(self, copies: int) -> DosingImplication:
        if copies == 0:
            return DosingImplication.NORMAL
        if copies == 1:
            return self.het_implication
        return self.hom_implication


def packaged_table(name: str) -> Path:
    """Path of a table shipped in the package data directory."""
    return Path(str(files("allele_compat") / "data" / name))


def _read_table(path: Path, required: list[str]) -> pd.DataFrame:
    """Load a reference table and apply shared validation.

    Raises:
        FileNotFoundError: If the table does not exist
        ValueError: If required columns are missing or the table is empty
    """
    if not path.exists():
        raise FileNotFoundError(f"Reference table not found: {path}")

    df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)

    missing_cols = [col for col in required if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Reference table {path.name} missing required columns: {missing_cols}")
    if df.empty:
        raise ValueError(f"Reference table {path.name} is empty")

    df["chromosome"] = df["chromosome"].map(normalize_chromosome)
    df["position"] = pd.to_numeric(df["position"], errors="coerce")
    df["effect_allele"] = df["effect_allele"].str.upper().str.strip()
    df["other_allele"] = df["other_allele"].str.upper().str.strip()

    # Remove invalid rows
    initial_count = len(df)
    df = df[df["position"].notna() & (df["position"] > 0)]
    df = df[df["effect_allele"].str.match(r"^[ACGT]+$") & df["other_allele"].str.match(r"^[ACGT]+$")]
    if len(df) < initial_count:
        logger.warning(f"Dropped {initial_count - len(df)} invalid rows from {path.name}")

    return df


@lru_cache(maxsize=8)
def load_disease_table(path: Path | None = None) -> tuple[DiseaseVariant, ...]:
    """Load the disease variant table (packaged table when path is None)."""
    path = path or packaged_table("disease_variants.tsv")
    df = _read_table(path, DISEASE_COLUMNS)

    effects = df["effect"].str.lower().str.strip()
    invalid = sorted(set(effects) - VALID_EFFECTS)
    if invalid:
        raise ValueError(f"Invalid effect values in {path.name}: {invalid}")

    odds = pd.to_numeric(df["odds_ratio"], errors="coerce")
    variants = tuple(
        DiseaseVariant(
            variant_id=row.variant_id,
            gene=row.gene,
            chromosome=row.chromosome,
            position=int(row.position),
            effect_allele=row.effect_allele,
            other_allele=row.other_allele,
            condition=row.condition,
            effect=effect,
            odds_ratio=None if pd.isna(odds_ratio) else float(odds_ratio),
        )
        for row, effect, odds_ratio in zip(df.itertuples(index=False), effects, odds)
    )
    logger.debug(f"Loaded {len(variants)} disease variants from {path}")
    return variants


def _parse_implication(value: str, path: Path) -> DosingImplication:
    try:
        return DosingImplication[value.strip().upper()]
    except KeyError:
        raise ValueError(
            f"Invalid dosing implication {value!r} in {path.name}. "
            f"Valid options: {[d.name.lower() for d in DosingImplication]}"
        )


@lru_cache(maxsize=8)
def load_pgx_table(path: Path | None = None) -> tuple[PharmacogenomicVariant, ...]:
    """Load the pharmacogenomic variant table (packaged table when path is None)."""
    path = path or packaged_table("pgx_variants.tsv")
    df = _read_table(path, PGX_COLUMNS)

    variants = tuple(
        PharmacogenomicVariant(
            variant_id=row.variant_id,
            gene=row.gene,
            chromosome=row.chromosome,
            position=int(row.position),
            effect_allele=row.effect_allele,
            other_allele=row.other_allele,
            drug=row.drug,
            star_allele=row.star_allele or None,
            het_implication=_parse_implication(row.het_implication, path),
            hom_implication=_parse_implication(row.hom_implication, path),
        )
        for row in df.itertuples(index=False)
    )
    logger.debug(f"Loaded {len(variants)} pharmacogenomic variants from {path}")
    return variants
