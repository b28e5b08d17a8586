"""Audit trail of merge decisions and builds."""

import logging
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

import structlog


class BuildAuditLogger:
    """Records why mentions were merged or excluded, as JSON events.

    Events go to the ``casefile.audit`` standard logger and are also kept in
    memory (most recent ``max_events``) so a build can report on them.
    """

    def __init__(self, logger_name: str = "casefile.audit", max_events: int = 10000):
        """Initialize audit logger.

        Args:
            logger_name: Name of the standard logger events are written to
            max_events: How many recent events to keep in memory
        """
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        # Shared across worker threads, unlike a thread-local
        self._build_context: Dict[str, Any] = {}
        self.logger = structlog.wrap_logger(
            logging.getLogger(logger_name),
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                self._add_build_context,
                self._remember,
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
        )

    def _add_build_context(self, logger, method_name, event_dict):
        event_dict["audit_timestamp"] = datetime.now(timezone.utc).isoformat()
        for key, value in self._build_context.items():
            event_dict.setdefault(key, value)
        return event_dict

    def _remember(self, logger, method_name, event_dict):
        self._events.append(dict(event_dict))
        return event_dict

    @contextmanager
    def build_context(self, **kwargs):
        """Add fields such as a build id to every event inside the block.

        Usage:
            with audit.build_context(build_id="20240101T000000"):
                engine.merge(mentions)
        """
        previous = dict(self._build_context)
        self._build_context.update(kwargs)
        try:
            yield
        finally:
            self._build_context = previous

    @property
    def events(self) -> List[Dict[str, Any]]:
        return list(self._events)

    def events_of(self, event: str) -> List[Dict[str, Any]]:
        return [e for e in self._events if e.get("event") == event]

    def log_match(self, seed, candidate, result) -> None:
        """Record an accepted pairwise match.

        Args:
            seed: RawMention that opened the comparison
            candidate: RawMention merged with it
            result: MatchResult that justified the merge
        """
        self.logger.info(
            "match_accepted",
            source=seed.source_id.value,
            entity_type=seed.entity_type.value,
            seed=seed.raw_name,
            candidate=candidate.raw_name,
            reason=result.reason.value,
            confidence=round(result.confidence, 4),
        )

    def log_excluded(self, mention, reason: str = "empty_normalized_key") -> None:
        """Record a mention that could not take part in merging."""
        self.logger.warning(
            "mention_excluded",
            source=mention.source_id.value,
            entity_type=mention.entity_type.value,
            raw_name=mention.raw_name,
            reason=reason,
        )

    def log_build_complete(self, **summary) -> None:
        """Record the summary of a finished build."""
        self.logger.info("build_complete", **summary)

    def log_error(
        self,
        error_type: str,
        error_message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.logger.error(
            "build_error",
            error_type=error_type,
            error_message=error_message,
            error_context=context or {},
        )
