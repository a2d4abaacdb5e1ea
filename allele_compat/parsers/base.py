"""Shared parser plumbing: per-file context, statistics and the record stream.

Every format parser is a generator function ``(path, ctx) -> Iterator[GenotypeRecord]``.
The parser reports its current line through ``ctx.line`` and routes bad
input through ``ctx.malformed()`` (policy dependent) or ``ctx.header_error()``
(always fatal). ``RecordStream`` wraps the generator, enforces the
position-ordering invariant and keeps the counts.
"""

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from allele_compat.config import ParseOptions
from allele_compat.exceptions import ParseError
from allele_compat.models import BloodType, FileFormat, GenotypeRecord, SampleMetadata

logger = logging.getLogger(__name__)


@dataclass
class ParseStats:
    """Counters collected while a file is parsed.

    Attributes:
        records: Records emitted (including no-calls)
        no_calls: Emitted records without a genotype call
        skipped: Malformed lines dropped under the "skip" policy
        warnings: First ``max_warnings`` warning messages
        warning_count: Total number of warnings, including unstored ones
    """

    records: int = 0
    no_calls: int = 0
    skipped: int = 0
    warnings: list[str] = field(default_factory=list)
    warning_count: int = 0


class ParseContext:
    """Mutable per-file state shared between a parser and its RecordStream."""

    def __init__(
        self,
        path: Path,
        fmt: FileFormat,
        options: ParseOptions,
        policy: str,
    ) -> None:
        self.path = path
        self.format = fmt
        self.options = options
        self.policy = options.on_malformed or policy
        self.stats = ParseStats()
        self.line = 0
        self.sample_id: str | None = None

        # Metadata declared by the source, assembled into SampleMetadata on demand
        self.sex: str | None = None
        self.blood_type: BloodType | None = None
        self.hla_alleles: dict[str, tuple[str, ...]] = {}
        self.genome_build: str | None = None
        self.extra: dict[str, str] = {}

        self._last_position: dict[str, int] = {}

    def warn(self, message: str) -> None:
        self.stats.warning_count += 1
        if len(self.stats.warnings) < self.options.max_warnings:
            self.stats.warnings.append(f"{self.path.name}:{self.line}: {message}")
        logger.debug(f"{self.path}:{self.line}: {message}")

    def malformed(self, reason: str) -> None:
        """Handle a malformed data line according to the policy.

        Raises:
            ParseError: Under the "fail" policy
        """
        if self.policy == "fail":
            raise ParseError(self.line, reason, self.path)
        self.stats.skipped += 1
        self.warn(f"skipped malformed line: {reason}")

    def header_error(self, reason: str) -> None:
        """Header violations are fatal under every policy."""
        raise ParseError(self.line, reason, self.path)

    def set_sex(self, value: str | None) -> None:
        """Record declared sex from "1"/"2"/"M"/"F"/"male"/"female" spellings."""
        if value is None:
            return
        lowered = value.strip().lower()
        if lowered in ("1", "m", "male"):
            self.sex = "male"
        elif lowered in ("2", "f", "female"):
            self.sex = "female"

    def set_blood_type(self, value: str) -> None:
        try:
            self.blood_type = BloodType.parse(value)
        except ValueError as e:
            self.warn(str(e))

    def set_genome_build(self, value: str) -> None:
        lowered = value.lower()
        if "grch38" in lowered or "hg38" in lowered:
            self.genome_build = "GRCh38"
        elif "grch37" in lowered or "hg19" in lowered or "b37" in lowered:
            self.genome_build = "GRCh37"
        else:
            self.genome_build = value.strip()

    def accept(self, record: GenotypeRecord) -> bool:
        """Check ordering and update counts for a record about to be emitted."""
        last = self._last_position.get(record.chromosome)
        if last is not None and record.position < last:
            self.malformed(
                f"position {record.chromosome}:{record.position} is out of order "
                f"(previous {record.chromosome}:{last})"
            )
            return False
        self._last_position[record.chromosome] = record.position

        self.stats.records += 1
        if not record.is_called:
            self.stats.no_calls += 1
        return True

    def build_metadata(self) -> SampleMetadata:
        return SampleMetadata(
            sex=self.sex,
            blood_type=self.blood_type,
            hla_alleles=dict(self.hla_alleles),
            genome_build=self.genome_build,
            extra=dict(self.extra),
        )


ParserFn = Callable[[Path, ParseContext], Iterator[GenotypeRecord]]


class RecordStream:
    """Lazy, single-pass sequence of GenotypeRecord for one file.

    ``stats`` and ``metadata`` fill in as the stream is consumed; both are
    complete once iteration finishes.

    Example:
        >>> stream = parse(Path("sample.vcf.gz"))
        >>> records = list(stream)
        >>> stream.stats.records
        1234
    """

    def __init__(self, path: Path, parser: ParserFn, context: ParseContext) -> None:
        self.path = path
        self.format = context.format
        self._parser = parser
        self._context = context
        self._consumed = False

    def __iter__(self) -> Iterator[GenotypeRecord]:
        if self._consumed:
            raise RuntimeError(f"Record stream for {self.path} was already consumed")
        self._consumed = True

        for record in self._parser(self.path, self._context):
            if self._context.accept(record):
                yield record

        stats = self._context.stats
        if stats.skipped:
            logger.warning(f"{self.path.name}: skipped {stats.skipped} malformed line(s)")
        logger.debug(
            f"Parsed {self.path}: {stats.records} records, {stats.no_calls} no-calls"
        )

    @property
    def stats(self) -> ParseStats:
        return self._context.stats

    @property
    def metadata(self) -> SampleMetadata:
        return self._context.build_metadata()

    @property
    def sample_id(self) -> str:
        """Sample identifier declared by the file, else the file name stem."""
        if self._context.sample_id:
            return self._context.sample_id
        name = self.path.name
        for suffix in (".gz", ".bgz"):
            if name.endswith(suffix):
                name = name[: -len(suffix)]
        return Path(name).stem
