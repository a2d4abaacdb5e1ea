"""
Comparison scheduler.

Fans a patient Sample out against N comparison Samples on a fixed-size
thread pool. Each (pair, module chain) is one sub-task: [IBD, RELATIONSHIP],
[HLA, ORGAN], [DISEASE] and [PHARMACOGENOMICS]. A downstream module reuses
its upstream result when both were requested. Samples are shared read-only;
only the aggregator synchronizes.

Failures are isolated per slot: InsufficientData records a skipped slot,
any other exception an error slot. A set abort event stops new modules from
starting; modules already running finish and are recorded.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Any

from allele_compat import analysis
from allele_compat.aggregator import ResultAggregator
from allele_compat.config import AnalysisConfig
from allele_compat.exceptions import InsufficientData, MissingOrganSelection, ModuleError
from allele_compat.models import AnalysisResult, ModuleTag, Report, SlotStatus
from allele_compat.sample import Sample

logger = logging.getLogger(__name__)


def resolve_modules(
    modules: Iterable[ModuleTag] | None,
    config: AnalysisConfig,
) -> frozenset[ModuleTag]:
    """Requested modules, checked for configuration errors before any dispatch.

    Organ compatibility is part of the default (all modules) selection only
    when an organ is configured; naming it explicitly without one is an error.

    Raises:
        MissingOrganSelection: If organ compatibility is requested without an organ
    """
    if modules is not None:
        resolved = frozenset(modules)
    elif "analysis_subset" in config.model_fields_set or config.organ is not None:
        resolved = config.analysis_subset
    else:
        resolved = config.analysis_subset - {ModuleTag.ORGAN}
    if ModuleTag.ORGAN in resolved and config.organ is None:
        raise MissingOrganSelection()
    return resolved


def run_module(
    module: ModuleTag,
    patient: Sample,
    other: Sample | None,
    config: AnalysisConfig,
    **upstream: Any,
) -> AnalysisResult:
    """Run one module and capture its outcome as a Report slot."""
    comparison_id = other.sample_id if other is not None else None
    started_at = datetime.now(timezone.utc)
    start = time.perf_counter()

    runner = analysis.MODULE_RUNNERS[module]
    try:
        output = runner(patient, other, config, **upstream)
    except InsufficientData as e:
        logger.info(f"{module.name} skipped for {patient.sample_id} vs {comparison_id}: {e.reason}")
        status, output, reason = SlotStatus.SKIPPED, None, e.reason
    except Exception as e:
        error = ModuleError(module.name, f"{type(e).__name__}: {e}")
        logger.error(f"{error} ({patient.sample_id} vs {comparison_id})")
        status, output, reason = SlotStatus.ERROR, None, error.reason
    else:
        status, reason = SlotStatus.OK, None

    return AnalysisResult(
        module=module,
        patient_id=patient.sample_id,
        comparison_id=comparison_id,
        status=status,
        output=output,
        reason=reason,
        started_at=started_at,
        elapsed_seconds=time.perf_counter() - start,
    )


def _unavailable(module: ModuleTag, upstream: AnalysisResult) -> AnalysisResult:
    """Slot for a downstream module whose upstream result did not succeed."""
    return AnalysisResult(
        module=module,
        patient_id=upstream.patient_id,
        comparison_id=upstream.comparison_id,
        status=upstream.status,
        reason=f"{upstream.module.name} unavailable: {upstream.reason}",
    )


def _aborted(module: ModuleTag, patient: Sample, other: Sample | None) -> AnalysisResult:
    return AnalysisResult(
        module=module,
        patient_id=patient.sample_id,
        comparison_id=other.sample_id if other is not None else None,
        status=SlotStatus.ABORTED,
        reason="run aborted before the module started",
    )


def run_chain(
    chain: tuple[ModuleTag, ...],
    patient: Sample,
    other: Sample | None,
    config: AnalysisConfig,
    abort_event: threading.Event | None = None,
) -> list[AnalysisResult]:
    """Run the requested modules of one chain in order."""
    results = []
    upstream: dict[str, Any] = {}
    failed_upstream: AnalysisResult | None = None

    for module in chain:
        if abort_event is not None and abort_event.is_set():
            results.append(_aborted(module, patient, other))
            continue
        if failed_upstream is not None:
            results.append(_unavailable(module, failed_upstream))
            continue

        result = run_module(module, patient, other, config, **upstream)
        results.append(result)

        keyword = analysis.UPSTREAM_KEYWORDS.get(module)
        if keyword is not None:
            if result.ok:
                upstream[keyword] = result.output
            else:
                failed_upstream = result
    return results


def compare(
    patient: Sample,
    comparisons: Iterable[Sample],
    modules: Iterable[ModuleTag] | None = None,
    worker_count: int = 0,
    config: AnalysisConfig | None = None,
    abort_event: threading.Event | None = None,
    on_report: Callable[[Report], None] | None = None,
) -> list[Report]:
    """
    Compare a patient against each comparison sample.

    Args:
        patient: Patient sample (the recipient for organ compatibility)
        comparisons: Comparison samples, in the order Reports are wanted
        modules: Modules to run (default: config.analysis_subset)
        worker_count: Pool size; 0 uses config.worker_count, then the CPU count
        config: Analysis thresholds (default: AnalysisConfig())
        abort_event: When set, modules that have not started are recorded as aborted
        on_report: Called from a worker thread as each pair's Report completes

    Returns:
        One Report per comparison sample, in input order

    Raises:
        MissingOrganSelection: If organ compatibility is requested without an organ
    """
    config = config or AnalysisConfig()
    comparisons = list(comparisons)
    requested = resolve_modules(modules, config)
    if not comparisons:
        return []

    workers = worker_count or config.resolved_worker_count
    chains = [
        tuple(tag for tag in chain if tag in requested)
        for chain in analysis.MODULE_CHAINS
    ]
    chains = [chain for chain in chains if chain]

    aggregator = ResultAggregator(
        patient_id=patient.sample_id,
        comparison_ids=[sample.sample_id for sample in comparisons],
        modules=requested,
        comparison_paths=[sample.source_path for sample in comparisons],
    )

    def task(index: int, chain: tuple[ModuleTag, ...]) -> None:
        for result in run_chain(chain, patient, comparisons[index], config, abort_event):
            report = aggregator.record(index, result)
            if report is not None and on_report is not None:
                on_report(report)

    logger.info(
        f"Comparing {patient.sample_id} against {len(comparisons)} samples: "
        f"{len(comparisons) * len(chains)} tasks on {workers} workers"
    )

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_task = {
            executor.submit(task, index, chain): (index, chain)
            for index in range(len(comparisons))
            for chain in chains
        }
        for future in as_completed(future_to_task):
            index, chain = future_to_task[future]
            try:
                future.result()
            except Exception as e:
                logger.error(
                    f"Task for {comparisons[index].sample_id} "
                    f"({', '.join(tag.name for tag in chain)}) failed: {e}"
                )

    reports = aggregator.reports()
    if abort_event is not None and abort_event.is_set():
        logger.warning("Comparison run aborted; unstarted modules recorded as aborted")
    return reports


def profile(
    sample: Sample,
    modules: Iterable[ModuleTag] | None = None,
    config: AnalysisConfig | None = None,
) -> Report:
    """
    Single-sample Report (disease risk and pharmacogenomics).

    Pairwise modules among the requested ones are ignored.

    Raises:
        ValueError: If no single-sample module was requested
    """
    config = config or AnalysisConfig()
    requested = frozenset(modules) if modules is not None else config.analysis_subset
    single = sorted((tag for tag in requested if not tag.pairwise), key=lambda tag: tag.value)
    if not single:
        raise ValueError("profile needs at least one single-sample module (disease, pharmacogenomics)")

    aggregator = ResultAggregator(
        patient_id=sample.sample_id,
        comparison_ids=[None],
        modules=single,
        comparison_paths=[None],
    )
    for module in single:
        aggregator.record(0, run_module(module, sample, None, config))
    return aggregator.reports()[0]
