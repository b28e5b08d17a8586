"""
Index Build Pipeline

Typed source records -> raw mentions grouped by source -> per-source merge
(optionally one worker thread per source) -> sequential fold in the fixed
source order -> a published, read-only UnifiedIndex.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .audit import BuildAuditLogger
from .config import EngineConfig
from .errors import ErrorContext, ErrorHandler, SourceDataError
from .logging_config import Timer, log_context, log_event, log_performance
from .models import SOURCE_ORDER, MergedEntity, RawMention, SourceId
from .resolution.core_engine import ClusterMergeEngine
from .resolution.match_classifier import MatchClassifier
from .unification.index import IndexHandle, UnifiedIndex
from .unification.sources import mentions_by_source, parse_source_records
from .unification.unifier import CrossSourceUnifier, UnifyReport

logger = logging.getLogger(__name__)


@dataclass
class SourceReport:
    """What happened to one source during a build."""
    source: str
    mentions: int = 0
    clusters: int = 0
    comparisons: int = 0
    accepted_matches: int = 0
    excluded_empty_keys: List[str] = field(default_factory=list)
    duration_ms: float = 0.0


@dataclass
class BuildReport:
    """Summary of one index build."""
    build_id: str
    sources: Dict[str, SourceReport] = field(default_factory=dict)
    entities: int = 0
    high_value_targets: int = 0
    skipped_empty_keys: int = 0
    skipped_below_threshold: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_source_file(path: Union[str, Path], source_id: SourceId) -> List[Any]:
    """Read a JSON list of records for one source.

    Raises:
        SourceDataError: The file is missing, unreadable or not a JSON list
        RecordValidationError: A record failed validation
    """
    path = Path(path)
    context = ErrorContext(
        operation="load_source_file",
        resource_type=SourceId(source_id).value,
        resource_id=str(path),
    )
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise SourceDataError(
            f"Cannot read source file: {e.strerror or e}", path=str(path), context=context, cause=e
        ) from e
    except json.JSONDecodeError as e:
        raise SourceDataError(
            f"Source file is not valid JSON: {e.msg}", path=str(path), context=context, cause=e
        ) from e

    if not isinstance(data, list):
        raise SourceDataError(
            "Source file must contain a JSON list of records", path=str(path), context=context
        )

    records = parse_source_records(source_id, data)
    log_event(
        __name__,
        f"Loaded {len(records)} {SourceId(source_id).value} records from {path}",
        source=SourceId(source_id).value,
        records=len(records),
    )
    return records


def _new_build_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")


class IndexBuilder:
    """Runs full, from-scratch index builds."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        audit: Optional[BuildAuditLogger] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.config = config or EngineConfig()
        self.audit = audit
        self.error_handler = error_handler or ErrorHandler(audit_logger=audit)
        self.classifier = MatchClassifier(self.config.thresholds)
        self.unifier = CrossSourceUnifier(
            weights=self.config.weights,
            min_standalone_mentions=self.config.min_standalone_mentions,
            top_co_passengers=self.config.top_co_passengers,
        )
        self.last_report: Optional[BuildReport] = None

    def _engine(self) -> ClusterMergeEngine:
        # One engine per source; engines keep per-run state
        return ClusterMergeEngine(
            classifier=self.classifier,
            mode=self.config.cluster_mode,
            blocking=self.config.blocking_enabled,
            acceptance=self.config.thresholds.merge_acceptance,
            audit=self.audit,
        )

    def merge_source(
        self, source_id: SourceId, mentions: List[RawMention]
    ) -> Tuple[List[MergedEntity], SourceReport]:
        """Deduplicate the mentions of one source."""
        engine = self._engine()
        with Timer() as timer:
            merged = engine.merge(mentions)
        run = engine.last_report
        report = SourceReport(
            source=source_id.value,
            mentions=run.total_mentions,
            clusters=run.clusters,
            comparisons=run.comparisons,
            accepted_matches=run.accepted_matches,
            excluded_empty_keys=list(run.excluded_empty_keys),
            duration_ms=timer.duration_ms,
        )
        log_performance(
            __name__, f"merge {source_id.value}", timer.duration_ms, source=source_id.value
        )
        return merged, report

    def _merge_all(
        self, grouped: Dict[SourceId, List[RawMention]]
    ) -> Dict[SourceId, Tuple[List[MergedEntity], SourceReport]]:
        sources = [s for s in SOURCE_ORDER if grouped.get(s)]
        if not self.config.parallel_sources or len(sources) < 2:
            return {s: self.merge_source(s, grouped[s]) for s in sources}

        # Sources share no mutable state until the fold
        with ThreadPoolExecutor(max_workers=min(self.config.max_workers, len(sources))) as pool:
            futures = {s: pool.submit(self.merge_source, s, grouped[s]) for s in sources}
            return {s: futures[s].result() for s in sources}

    def _scope(self, build_id: str) -> ExitStack:
        """Bind the build id to application logs and audit events."""
        stack = ExitStack()
        stack.enter_context(log_context(build_id=build_id))
        if self.audit:
            stack.enter_context(self.audit.build_context(build_id=build_id))
        return stack

    def build(self, records: Iterable[Any], build_id: Optional[str] = None) -> UnifiedIndex:
        """Build a complete index from typed source records."""
        build_id = build_id or _new_build_id()
        report = BuildReport(build_id=build_id)

        with self._scope(build_id), Timer() as timer:
            grouped = mentions_by_source(records)
            merged = self._merge_all(grouped)

            for source_id, (_, source_report) in merged.items():
                report.sources[source_id.value] = source_report

            unified = self.unifier.unify({s: entities for s, (entities, _) in merged.items()})
            index = UnifiedIndex(
                unified, frequent_flyer_threshold=self.config.frequent_flyer_threshold
            )

        unify_report: UnifyReport = self.unifier.last_report
        report.entities = len(index)
        report.high_value_targets = len(index.high_value_targets())
        report.skipped_empty_keys = len(unify_report.skipped_empty_keys)
        report.skipped_below_threshold = unify_report.skipped_below_threshold
        report.duration_ms = timer.duration_ms
        self.last_report = report

        if self.audit:
            self.audit.log_build_complete(
                build_id=build_id,
                entities=report.entities,
                high_value_targets=report.high_value_targets,
                duration_ms=round(report.duration_ms, 1),
            )
        logger.info(
            f"Built index {build_id}: {report.entities} entities, "
            f"{report.high_value_targets} high-value targets in {report.duration_ms:.0f}ms"
        )
        return index

    def build_from_files(self, paths: Dict[SourceId, Union[str, Path]]) -> UnifiedIndex:
        """Load every given source file, then build.

        Any SourceDataError is logged through the error handler and re-raised.
        """
        build_id = _new_build_id()
        records: List[Any] = []
        with self._scope(build_id):
            for source_id in SOURCE_ORDER:
                path = paths.get(source_id)
                if path is None:
                    continue
                with self.error_handler.error_context(
                    operation="load_source_file",
                    resource_type=source_id.value,
                    resource_id=str(path),
                ):
                    try:
                        records.extend(load_source_file(path, source_id))
                    except Exception as e:
                        self.error_handler.handle_error(e)
        return self.build(records, build_id=build_id)


def build_index(
    records: Iterable[Any],
    config: Optional[EngineConfig] = None,
    handle: Optional[IndexHandle] = None,
    audit: Optional[BuildAuditLogger] = None,
) -> UnifiedIndex:
    """Build an index from typed records and publish it on ``handle`` if given."""
    builder = IndexBuilder(config, audit=audit)
    if handle is None:
        return builder.build(records)
    return handle.rebuild(lambda: builder.build(records))
