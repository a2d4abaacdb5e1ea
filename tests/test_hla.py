"""Tests for HLA comparison."""

from collections.abc import Callable

import pytest

from allele_compat.analysis import hla
from allele_compat.analysis.hla import HLA_LOCI, shared_allele_count, two_field, type_hla
from allele_compat.config import AnalysisConfig
from allele_compat.exceptions import InsufficientData
from allele_compat.models import GenotypeRecord
from allele_compat.sample import Sample

HLA_A_37 = (29910247, 29913661)


class TestAlleleHelpers:
    def test_two_field(self) -> None:
        assert two_field("02:01:01:02") == "02:01"
        assert two_field("02:01") == "02:01"
        assert two_field("02") == "02"

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            (("02:01", "24:02"), ("02:01", "24:02"), 2),
            (("02:01", "24:02"), ("24:02", "02:01"), 2),
            (("02:01", "24:02"), ("02:01", "03:01"), 1),
            (("02:01", "02:01"), ("02:01", "03:01"), 1),
            (("02:01", "24:02"), ("01:01", "03:01"), 0),
            (("02:01:01:01", "24:02:01"), ("02:01:02", "24:02"), 2),
        ],
    )
    def test_shared_allele_count(self, a: tuple[str, ...], b: tuple[str, ...], expected: int) -> None:
        assert shared_allele_count(a, b) == expected


class TestDeclaredTyping:
    """Test comparisons of declared HLA typing."""

    def test_identical_typing(
        self,
        make_sample: Callable[..., Sample],
        hla_typing: dict[str, tuple[str, ...]],
    ) -> None:
        result = type_hla(make_sample("R", hla=hla_typing), make_sample("D", hla=hla_typing))

        assert result.source == "declared"
        assert result.typed_count == len(HLA_LOCI)
        assert result.match_count == len(HLA_LOCI)
        assert result.mismatches == []
        assert result.allele_match_fraction == 1.0

    def test_partial_mismatch(
        self,
        make_sample: Callable[..., Sample],
        hla_typing: dict[str, tuple[str, ...]],
    ) -> None:
        donor_typing = dict(hla_typing, A=("02:01", "01:01"), DRB1=("11:01", "13:01"))

        result = type_hla(make_sample("R", hla=hla_typing), make_sample("D", hla=donor_typing))

        assert result.match_count == 5
        assert result.mismatches == ["HLA-A", "HLA-DRB1"]
        assert result.allele_match_fraction == pytest.approx(11 / 14)

    def test_untyped_loci(self, make_sample: Callable[..., Sample]) -> None:
        result = type_hla(
            make_sample("R", hla={"A": ("02:01", "24:02"), "B": ("07:02", "44:02")}),
            make_sample("D", hla={"A": ("02:01", "24:02")}),
        )

        assert result.typed_count == 1
        assert result.matched_loci == ["HLA-A"]
        # Loci absent from either side are neither matches nor mismatches
        assert result.mismatches == []


class TestRegionGenotypes:
    """Test the fallback over chr6 genotype records."""

    def _region_records(self, make_record: Callable[..., GenotypeRecord], genotypes: list[str]) -> list[GenotypeRecord]:
        start = HLA_A_37[0]
        return [make_record("6", start + i * 100, gt) for i, gt in enumerate(genotypes)]

    def test_identical_region(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        records = self._region_records(make_record, ["AG", "CC", "TT"])

        result = type_hla(make_sample("R", records), make_sample("D", records))

        assert result.source == "genotype"
        assert result.typed_count == 1
        assert result.matched_loci == ["HLA-A"]

    def test_half_match(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        a = make_sample("R", self._region_records(make_record, ["AG", "CC"]))
        b = make_sample("D", self._region_records(make_record, ["AA", "CT"]))

        result = type_hla(a, b)

        assert result.loci[0].locus == "A"
        assert result.loci[0].matched_alleles == 1
        assert result.mismatches == ["HLA-A"]

    def test_opposite_homozygotes(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        a = make_sample("R", self._region_records(make_record, ["AA", "CC"]))
        b = make_sample("D", self._region_records(make_record, ["GG", "CC"]))

        assert type_hla(a, b).loci[0].matched_alleles == 0

    def test_build_selects_regions(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        """GRCh37 coordinates fall outside the GRCh38 HLA-A span."""
        records = self._region_records(make_record, ["AG"])
        a = make_sample("R", records, genome_build="GRCh38")
        b = make_sample("D", records, genome_build="GRCh38")

        with pytest.raises(InsufficientData):
            type_hla(a, b)

    def test_declared_without_common_locus_falls_back(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        records = self._region_records(make_record, ["AG"])
        a = make_sample("R", records, hla={"A": ("02:01", "24:02")})
        b = make_sample("D", records, hla={"B": ("07:02", "44:02")})

        assert type_hla(a, b).source == "genotype"


class TestInsufficientData:
    def test_no_data(self, make_sample: Callable[..., Sample]) -> None:
        with pytest.raises(InsufficientData):
            type_hla(make_sample("R"), make_sample("D"))

    def test_no_calls_only(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        a = make_sample("R", [make_record("6", HLA_A_37[0], "--")])
        b = make_sample("D", [make_record("6", HLA_A_37[0], "AG")])

        with pytest.raises(InsufficientData):
            type_hla(a, b)

    def test_run_requires_pair(self, make_sample: Callable[..., Sample]) -> None:
        with pytest.raises(ValueError):
            hla.run(make_sample("R"), None, AnalysisConfig())
