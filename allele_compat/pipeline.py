"""Path-level orchestration: detect, parse, then compare.

Coordinates the core for callers that hold file paths: loads the patient,
loads each comparison file (a file that cannot be detected or parsed gets a
Report carrying the error instead of results), and hands the loaded samples
to the scheduler.
"""

import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from allele_compat.config import AnalysisConfig, ParseOptions
from allele_compat.exceptions import AlleleCompatError
from allele_compat.logging_config import get_progress_logger
from allele_compat.models import Report
from allele_compat.parsers import load_sample
from allele_compat.sample import Sample
from allele_compat.scheduler import compare, profile, resolve_modules

logger = logging.getLogger(__name__)
progress_logger = get_progress_logger()

console = Console()


def _failed_report(patient_id: str, path: Path, error: Exception) -> Report:
    return Report(
        patient_id=patient_id,
        comparison_id=path.name,
        results=(),
        generated_at=datetime.now(timezone.utc),
        comparison_path=path,
        error=str(error),
    )


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def load_comparisons(
    patient_id: str,
    paths: list[Path],
    parse_options: ParseOptions | None = None,
    progress: Progress | None = None,
) -> list[Sample | Report]:
    """Load comparison files in order; failures become error Reports."""
    loaded: list[Sample | Report] = []
    task = progress.add_task("Loading comparison files...", total=len(paths)) if progress else None
    for path in paths:
        try:
            loaded.append(load_sample(path, options=parse_options))
        except (AlleleCompatError, OSError, ValueError) as e:
            logger.error(f"Failed to load comparison file {path}: {e}")
            loaded.append(_failed_report(patient_id, path, e))
        if progress is not None:
            progress.advance(task)
    return loaded


def run_comparison(
    patient_path: Path | str,
    comparison_paths: Iterable[Path | str],
    config: AnalysisConfig | None = None,
    parse_options: ParseOptions | None = None,
    show_progress: bool = False,
    abort_event: threading.Event | None = None,
) -> list[Report]:
    """Compare a patient file against comparison files.

    Args:
        patient_path: Patient genotype file
        comparison_paths: Comparison files, in the order Reports are wanted
        config: Analysis configuration (default: AnalysisConfig())
        parse_options: Parser options applied to every file
        show_progress: Show rich progress bars on the console
        abort_event: Forwarded to the scheduler

    Returns:
        One Report per comparison path, in input order

    Raises:
        MissingOrganSelection: If organ compatibility is requested without an organ
        UnrecognizedFormat: If the patient file format cannot be detected
        ParseError: If the patient file is malformed
    """
    config = config or AnalysisConfig()
    paths = [Path(p) for p in comparison_paths]
    # Configuration errors surface before any file is read
    modules = resolve_modules(None, config)

    patient = load_sample(patient_path, options=parse_options)
    progress_logger.info(
        f"Patient {patient.sample_id}: {patient.metrics.record_count:,} records; "
        f"{len(paths)} comparison files"
    )

    progress = _progress() if show_progress else None
    if progress is not None:
        progress.start()
    try:
        loaded = load_comparisons(patient.sample_id, paths, parse_options, progress)
        samples = [item for item in loaded if isinstance(item, Sample)]

        compare_task = progress.add_task("Comparing samples...", total=len(samples)) if progress else None

        def advance(report: Report) -> None:
            if progress is not None:
                progress.advance(compare_task)

        compared = iter(
            compare(
                patient,
                samples,
                modules=modules,
                config=config,
                abort_event=abort_event,
                on_report=advance,
            )
        )
    finally:
        if progress is not None:
            progress.stop()

    reports = [next(compared) if isinstance(item, Sample) else item for item in loaded]
    failed = sum(1 for report in reports if report.error)
    progress_logger.info(
        f"Completed {len(reports)} comparisons ({failed} files failed to load)"
    )
    return reports


def run_profile(
    patient_path: Path | str,
    config: AnalysisConfig | None = None,
    parse_options: ParseOptions | None = None,
) -> Report:
    """Single-sample disease risk and pharmacogenomic profile of one file."""
    config = config or AnalysisConfig()
    sample = load_sample(patient_path, options=parse_options)
    return profile(sample, config=config)
