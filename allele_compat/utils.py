"""Allele and chromosome helpers used by every parser and analysis module.

Chromosome names are canonicalized once, at parse time, so later modules can
compare samples from different sources by chromosome+position key.
"""

# Complement lookup table for DNA bases
COMPLEMENT: dict[str, str] = {
    "A": "T",
    "T": "A",
    "C": "G",
    "G": "C",
    "N": "N",  # Unknown base stays as N
}

# PLINK numeric codes for the non-autosomal chromosomes
PLINK_CHROMOSOME_CODES: dict[str, str] = {
    "23": "X",
    "24": "Y",
    "25": "XY",
    "26": "MT",
}

# Allele value used for a missing call
NO_CALL = "."

MISSING_ALLELES = {"", ".", "-", "--", "0", "00", "N", "NN", "?"}

# Indel codes used by consumer genotyping arrays (I = insertion, D = deletion)
INDEL_CODES = {"I", "D"}


def complement(allele: str) -> str:
    """Get the complement of a single DNA base.

    Args:
        allele: Single DNA base (A, T, C, G, or N)

    Returns:
        Complementary base (A<->T, C<->G, N->N); anything else is returned as is

    Example:
        >>> complement("A")
        "T"
    """
    return COMPLEMENT.get(allele, allele)


def is_palindromic(a1: str, a2: str) -> bool:
    """Check if a SNP is palindromic (A/T or G/C).

    Palindromic SNPs read the same on both strands, so a strand flip
    cannot be detected from the alleles alone.

    Example:
        >>> is_palindromic("A", "T")
        True
        >>> is_palindromic("A", "G")
        False
    """
    return (a1, a2) in {("A", "T"), ("T", "A"), ("G", "C"), ("C", "G")}


def is_transition(ref: str, alt: str) -> bool:
    """Check if a single-base substitution is a transition (purine<->purine
    or pyrimidine<->pyrimidine)."""
    return {ref, alt} in ({"A", "G"}, {"C", "T"})


def normalize_chromosome(chr_val: str) -> str:
    """Normalize chromosome value to the canonical naming scheme.

    Strips any "chr" prefix, removes leading zeros, maps the PLINK numeric
    codes 23-26 to X/Y/XY/MT and "M" to "MT".

    Example:
        >>> normalize_chromosome("chr01")
        "1"
        >>> normalize_chromosome("chrM")
        "MT"
        >>> normalize_chromosome("23")
        "X"
    """
    chr_val = chr_val.strip()

    # Remove 'chr' prefix if present
    if chr_val.lower().startswith("chr"):
        chr_val = chr_val[3:]

    # Remove leading zeros for numeric chromosomes
    if chr_val.isdigit():
        chr_val = str(int(chr_val))
        return PLINK_CHROMOSOME_CODES.get(chr_val, chr_val)

    chr_val = chr_val.upper()
    if chr_val == "M":
        return "MT"
    return chr_val


def chromosome_sort_key(chr_val: str) -> tuple[int, int | str]:
    """Sort key placing autosomes numerically before X, Y, XY, MT and contigs."""
    if chr_val.isdigit():
        return 0, int(chr_val)
    order = {"X": 1, "Y": 2, "XY": 3, "MT": 4}
    if chr_val in order:
        return 1, order[chr_val]
    return 2, chr_val


def split_genotype(value: str) -> tuple[str, str] | None:
    """Split a genotype string into an uppercase allele pair.

    Accepts the spellings used by consumer and tabular exports: "AG",
    "A/G", "A|G", "A G", "A,G" and single-letter haploid calls ("A" ->
    ("A", "A")). Missing calls ("--", "00", "", ".") return None.

    Example:
        >>> split_genotype("ag")
        ("A", "G")
        >>> split_genotype("--")
        None
    """
    cleaned = value.strip().upper().replace(" ", "")
    if cleaned in MISSING_ALLELES:
        return None

    for separator in ("/", "|", ","):
        if separator in cleaned:
            parts = cleaned.split(separator)
            if len(parts) != 2:
                return None
            a1, a2 = parts
            if a1 in MISSING_ALLELES or a2 in MISSING_ALLELES:
                return None
            return a1, a2

    if len(cleaned) == 1:
        return cleaned, cleaned
    if len(cleaned) == 2:
        return cleaned[0], cleaned[1]
    return None


def allele_pair_from_columns(a1: str, a2: str) -> tuple[str, str] | None:
    """Build an allele pair from two separate columns; None when either is missing."""
    a1 = a1.strip().upper()
    a2 = a2.strip().upper()
    if a1 in MISSING_ALLELES or a2 in MISSING_ALLELES:
        return None
    return a1, a2
