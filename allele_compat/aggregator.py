"""
Thread-safe collection of module results into per-pair Reports.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

from allele_compat.models import AnalysisResult, ModuleTag, Report, SlotStatus

logger = logging.getLogger(__name__)


class ResultAggregator:
    """
    Buffers module results per comparison pair and builds Reports.

    Worker threads record results concurrently; a pair's Report is built as
    soon as every requested module slot is filled. Reports are handed out
    in input order regardless of completion order.
    """

    def __init__(
        self,
        patient_id: str,
        comparison_ids: list[str | None],
        modules: Iterable[ModuleTag],
        comparison_paths: list[Path | None] | None = None,
    ):
        self.patient_id = patient_id
        self.comparison_ids = list(comparison_ids)
        self.modules = sorted(set(modules), key=lambda tag: tag.value)
        self.comparison_paths = comparison_paths or [None] * len(self.comparison_ids)
        if len(self.comparison_paths) != len(self.comparison_ids):
            raise ValueError("comparison_paths must match comparison_ids in length")

        self._buffers: list[dict[ModuleTag, AnalysisResult]] = [{} for _ in self.comparison_ids]
        self._reports: list[Report | None] = [None] * len(self.comparison_ids)
        self._lock = Lock()

    def record(self, index: int, result: AnalysisResult) -> Report | None:
        """
        Store one module result for pair ``index``.

        Args:
            index: Position of the comparison in the input order
            result: Filled module slot

        Returns:
            The pair's Report when this result completed it, else None
        """
        if result.module not in self.modules:
            raise ValueError(f"Module {result.module.name} was not requested")

        with self._lock:
            buffer = self._buffers[index]
            if result.module in buffer:
                raise ValueError(
                    f"Duplicate {result.module.name} result for comparison {index}"
                )
            buffer[result.module] = result
            if len(buffer) < len(self.modules) or self._reports[index] is not None:
                return None
            report = self._build_report(index)
            self._reports[index] = report

        logger.debug(f"Report complete for {self.patient_id} vs {report.comparison_id}")
        return report

    def _build_report(self, index: int) -> Report:
        buffer = self._buffers[index]
        results = []
        for module in self.modules:
            result = buffer.get(module)
            if result is None:
                # Slot never filled: the run was aborted before it started
                result = AnalysisResult(
                    module=module,
                    patient_id=self.patient_id,
                    comparison_id=self.comparison_ids[index],
                    status=SlotStatus.ABORTED,
                    reason="not started",
                )
            results.append(result)
        return Report(
            patient_id=self.patient_id,
            comparison_id=self.comparison_ids[index],
            results=tuple(results),
            generated_at=datetime.now(timezone.utc),
            comparison_path=self.comparison_paths[index],
        )

    def reports(self) -> list[Report]:
        """All Reports in input order; unfinished pairs are completed as aborted."""
        with self._lock:
            for index, report in enumerate(self._reports):
                if report is None:
                    self._reports[index] = self._build_report(index)
            return list(self._reports)
