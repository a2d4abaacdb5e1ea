"""Configuration for parsing and analysis.

``AnalysisConfig`` is a frozen pydantic model passed by value into every
module call, so the same samples can be analyzed concurrently with
different thresholds. ``ParseOptions`` controls how parsers treat
malformed input and which sample to read from multi-sample files.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from allele_compat.models import ALL_MODULES, ModuleTag, OrganType


class AnalysisConfig(BaseModel):
    """Thresholds and module selection for one comparison run.

    Attributes:
        min_cm: Minimum genetic length (cM) of a reported IBD segment
        min_segment_length: Minimum physical span (bp) of a reported IBD segment
        gap_tolerance: Consecutive discordant markers that terminate an IBD run;
            shorter discordant stretches are bridged as genotyping error
        organ: Organ selector for the transplant compatibility module
        analysis_subset: Modules to run (default: all)
        worker_count: Worker pool size, 0 = one worker per CPU core
        disease_table: Override for the packaged disease variant table
        pgx_table: Override for the packaged pharmacogenomic variant table
    """

    model_config = ConfigDict(frozen=True)

    min_cm: float = Field(default=7.0, ge=0.0, description="Minimum IBD segment length in cM")
    min_segment_length: int = Field(
        default=500, ge=0, description="Minimum IBD segment span in basepairs"
    )
    gap_tolerance: int = Field(
        default=2, ge=0, description="Discordant markers in a row that end an IBD run"
    )
    organ: OrganType | None = Field(default=None, description="Organ for compatibility scoring")
    analysis_subset: frozenset[ModuleTag] = Field(
        default=ALL_MODULES, description="Analysis modules to run"
    )
    worker_count: int = Field(default=0, ge=0, description="Worker threads, 0 = auto")
    disease_table: Path | None = Field(
        default=None, description="Disease variant table (default: packaged table)"
    )
    pgx_table: Path | None = Field(
        default=None, description="Pharmacogenomic variant table (default: packaged table)"
    )

    @field_validator("organ", mode="before")
    @classmethod
    def validate_organ(cls, v: object) -> object:
        if isinstance(v, str):
            normalized = v.strip().lower().replace("_", "-").replace(" ", "-")
            try:
                return OrganType(normalized)
            except ValueError:
                raise ValueError(
                    f"Invalid organ: {v}. Valid options: {[o.value for o in OrganType]}"
                )
        return v

    @field_validator("analysis_subset", mode="before")
    @classmethod
    def validate_analysis_subset(cls, v: object) -> object:
        if isinstance(v, (str, ModuleTag)):
            v = [v]
        if isinstance(v, (list, tuple, set, frozenset)):
            tags = set()
            for item in v:
                if isinstance(item, str):
                    try:
                        item = ModuleTag[item.strip().upper()]
                    except KeyError:
                        raise ValueError(
                            f"Invalid analysis module: {item}. "
                            f"Valid options: {[t.name.lower() for t in ModuleTag]}"
                        )
                tags.add(item)
            return frozenset(tags)
        return v

    @model_validator(mode="after")
    def validate_subset_not_empty(self) -> "AnalysisConfig":
        if not self.analysis_subset:
            raise ValueError("analysis_subset must name at least one module")
        return self

    @property
    def resolved_worker_count(self) -> int:
        """Worker pool size with 0 resolved to the CPU count."""
        return self.worker_count or os.cpu_count() or 1


@dataclass
class ParseOptions:
    """Options controlling how a file is parsed.

    Attributes:
        on_malformed: "skip" to drop malformed data lines with a warning,
            "fail" to raise ParseError; None uses the format family default
        sample_id: Sample to read from multi-sample VCF/BCF/PLINK files
            (default: the first sample)
        reference_fasta: Reference sequence for CRAM decoding
        min_depth: Minimum read depth for an alignment pileup position
        het_fraction: Minimum fraction of reads supporting the second allele
            for a heterozygous pileup summary
        max_warnings: Cap on stored warning messages (counts keep going)
    """

    on_malformed: Literal["skip", "fail"] | None = None
    sample_id: str | None = None
    reference_fasta: Path | None = None
    min_depth: int = 4
    het_fraction: float = 0.2
    max_warnings: int = 100

    def __post_init__(self) -> None:
        """Validate options."""
        if isinstance(self.reference_fasta, str):
            self.reference_fasta = Path(self.reference_fasta)
        if self.on_malformed not in (None, "skip", "fail"):
            raise ValueError(f"on_malformed must be 'skip' or 'fail': {self.on_malformed}")
        if self.min_depth < 1:
            raise ValueError(f"min_depth must be at least 1: {self.min_depth}")
        if not 0 < self.het_fraction <= 0.5:
            raise ValueError(f"het_fraction must be in (0, 0.5]: {self.het_fraction}")
