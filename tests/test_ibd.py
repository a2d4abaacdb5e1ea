"""Tests for IBD segment detection."""

from collections.abc import Callable

import pytest

from allele_compat.analysis import ibd
from allele_compat.analysis.ibd import SharedMarker, detect_ibd, find_runs, shares_allele
from allele_compat.config import AnalysisConfig
from allele_compat.models import GenotypeRecord
from allele_compat.sample import Sample


def _markers(pattern: str) -> list[SharedMarker]:
    """Markers 1 kb apart from a C/D concordance pattern."""
    return [
        SharedMarker(position=(i + 1) * 1000, concordant=flag == "C", identical=flag == "C", cm=None)
        for i, flag in enumerate(pattern)
    ]


class TestFindRuns:
    """Test concordant run detection with gap tolerance."""

    def test_gap_bridged(self) -> None:
        assert find_runs(_markers("CCDCCDDC"), 2) == [(0, 4), (7, 7)]

    def test_trailing_discordance_trimmed(self) -> None:
        assert find_runs(_markers("CCCD"), 2) == [(0, 2)]

    def test_zero_tolerance_behaves_like_one(self) -> None:
        assert find_runs(_markers("CCDCC"), 0) == find_runs(_markers("CCDCC"), 1) == [(0, 1), (3, 4)]

    def test_larger_tolerance(self) -> None:
        assert find_runs(_markers("CCDDCC"), 3) == [(0, 5)]

    def test_no_concordance(self) -> None:
        assert find_runs(_markers("DDD"), 2) == []


class TestDetectIbd:
    """Test segment detection between two samples."""

    def test_identical_block(
        self,
        make_sample: Callable[..., Sample],
        shared_block_records: list[GenotypeRecord],
    ) -> None:
        """Every genotype shared on chr1 1.0-2.0 Mb with a 1000 cM map."""
        a = make_sample("A", shared_block_records)
        b = make_sample("B", shared_block_records)

        result = detect_ibd(a, b, AnalysisConfig(min_cm=7.0, min_segment_length=500))

        assert result.segment_count == 1
        segment = result.segments[0]
        assert segment.chromosome == "1"
        assert segment.start == 1_000_000
        assert segment.end == 2_000_000
        assert segment.concordance == 1.0
        assert segment.length_cm == pytest.approx(1000.0)
        assert segment.lod > 0
        assert result.total_cm == pytest.approx(1000.0)
        assert result.identical_fraction == 1.0

    def test_physical_length_without_map(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        """Without map positions a segment is measured at 1 cM per Mb."""
        records = [make_record("2", pos, "CT") for pos in range(10_000_000, 20_000_001, 100_000)]
        a = make_sample("A", records)
        b = make_sample("B", records)

        result = detect_ibd(a, b, AnalysisConfig())

        assert result.segment_count == 1
        assert result.segments[0].length_cm == pytest.approx(10.0)

    def test_opposite_homozygotes_break_segments(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        positions = range(1_000_000, 41_000_001, 1_000_000)
        a = make_sample("A", [make_record("3", p, "AA") for p in positions])
        # Two discordant markers in a row at 20 and 21 Mb split the run
        b = make_sample(
            "B",
            [make_record("3", p, "GG" if p in (20_000_000, 21_000_000) else "AG") for p in positions],
        )

        result = detect_ibd(a, b, AnalysisConfig(min_cm=5.0))

        assert [(s.start, s.end) for s in result.segments] == [
            (1_000_000, 19_000_000),
            (22_000_000, 41_000_000),
        ]
        assert result.identical_fraction == 0.0

    def test_single_discordance_bridged(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        positions = range(1_000_000, 21_000_001, 1_000_000)
        a = make_sample("A", [make_record("4", p, "AA") for p in positions])
        b = make_sample("B", [make_record("4", p, "GG" if p == 10_000_000 else "AA") for p in positions])

        result = detect_ibd(a, b, AnalysisConfig())

        assert result.segment_count == 1
        assert result.segments[0].concordance == pytest.approx(20 / 21)

    def test_zero_overlap(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        a = make_sample("A", [make_record("1", p, "AG") for p in range(1000, 10000, 1000)])
        b = make_sample("B", [make_record("1", p, "AG") for p in range(1500, 10500, 1000)])

        result = detect_ibd(a, b, AnalysisConfig())

        assert result.segments == ()
        assert result.total_cm == 0.0
        assert result.shared_marker_count == 0

    def test_single_shared_position_skipped(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        a = make_sample("A", [make_record("5", 1000, "AG")])
        b = make_sample("B", [make_record("5", 1000, "AG")])

        assert detect_ibd(a, b, AnalysisConfig(min_cm=0.0, min_segment_length=0)).segments == ()

    def test_no_calls_ignored(
        self,
        make_sample: Callable[..., Sample],
        shared_block_records: list[GenotypeRecord],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        b_records = [make_record("1", r.position, "--") for r in shared_block_records]
        a = make_sample("A", shared_block_records)
        b = make_sample("B", b_records)

        result = detect_ibd(a, b, AnalysisConfig())

        assert result.segments == ()
        assert result.shared_marker_count == 0

    def test_segments_stay_on_their_chromosome(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
    ) -> None:
        records = [make_record(chrom, p, "AG") for chrom in ("1", "2") for p in range(1_000_000, 30_000_001, 1_000_000)]
        a = make_sample("A", records)
        b = make_sample("B", records)

        result = detect_ibd(a, b, AnalysisConfig())

        assert [s.chromosome for s in result.segments] == ["1", "2"]
        assert all(s.end > s.start for s in result.segments)

    @pytest.mark.parametrize("min_cm", [0.0, 5.0, 7.0, 12.0, 20.0, 40.0])
    def test_monotonic_in_min_cm(
        self,
        make_sample: Callable[..., Sample],
        make_record: Callable[..., GenotypeRecord],
        min_cm: float,
    ) -> None:
        """Raising min_cm never adds segments or total length."""
        positions = range(1_000_000, 61_000_001, 1_000_000)
        # Discordant pairs at 10, 25 and 45 Mb leave runs of varying length
        breaks = {10_000_000, 11_000_000, 25_000_000, 26_000_000, 45_000_000, 46_000_000}
        a = make_sample("A", [make_record("6", p, "CC") for p in positions])
        b = make_sample("B", [make_record("6", p, "TT" if p in breaks else "CT") for p in positions])

        lower = detect_ibd(a, b, AnalysisConfig(min_cm=min_cm))
        higher = detect_ibd(a, b, AnalysisConfig(min_cm=min_cm + 5.0))

        assert higher.segment_count <= lower.segment_count
        assert higher.total_cm <= lower.total_cm

    def test_shares_allele(self, make_record: Callable[..., GenotypeRecord]) -> None:
        assert shares_allele(make_record("1", 1, "AG"), make_record("1", 1, "GG")) is True
        assert shares_allele(make_record("1", 1, "AA"), make_record("1", 1, "GG")) is False

    def test_run_requires_pair(self, make_sample: Callable[..., Sample]) -> None:
        with pytest.raises(ValueError):
            ibd.run(make_sample("A"), None, AnalysisConfig())
