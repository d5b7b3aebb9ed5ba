from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from track_creator.exceptions import TrackCreatorError

logger = logging.getLogger(__name__)


class Status(Enum):
    """Result of processing one record (track or vertex)."""
    OK = "ok"
    SKIPPED = "skipped"
    FATAL = "fatal"


@dataclass(frozen=True, slots=True)
class Outcome:
    r"""
    Explicit per-record result.

    Per-record operations never raise for recoverable conditions; they return
    an :class:`Outcome` and let the caller aggregate them in a
    :class:`ProcessingReport`. Only ``FATAL`` outcomes carry an error that the
    report re-raises.

    Attributes
    ----------
    status : Status
        ``OK``, ``SKIPPED`` or ``FATAL``.
    reason : str
        Short, stable tag used as a counter key (e.g. ``"hit_count"``).
    error : Exception or None
        The underlying error, if any.
    """
    status: Status
    reason: str = ""
    error: Optional[Exception] = None

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(Status.OK)

    @classmethod
    def skip(cls, reason: str, error: Optional[Exception] = None) -> "Outcome":
        return cls(Status.SKIPPED, reason, error)

    @classmethod
    def fatal(cls, error: Exception) -> "Outcome":
        return cls(Status.FATAL, type(error).__name__, error)

    @property
    def accepted(self) -> bool:
        return self.status is Status.OK


@dataclass
class ProcessingReport:
    r"""
    Counters for a batch of per-record outcomes.

    Attributes
    ----------
    label : str
        Name used in log lines (e.g. ``"tracks"`` or ``"kink vertices"``).
    accepted : int
        Number of ``OK`` outcomes.
    skipped : collections.Counter
        ``reason -> count`` for ``SKIPPED`` outcomes.
    unavailable : list of str
        Collections that could not be read.
    """
    label: str
    accepted: int = 0
    skipped: Counter = field(default_factory=Counter)
    unavailable: list = field(default_factory=list)

    def record(self, outcome: Outcome) -> Outcome:
        """Count ``outcome``; re-raise the error of a ``FATAL`` one."""
        if outcome.status is Status.FATAL:
            if outcome.error is None:
                raise TrackCreatorError(f"{self.label}: fatal outcome '{outcome.reason}' carries no error")
            raise outcome.error
        if outcome.status is Status.OK:
            self.accepted += 1
        else:
            self.skipped[outcome.reason] += 1
        return outcome

    def mark_unavailable(self, collection: str) -> None:
        self.unavailable.append(collection)

    @property
    def n_skipped(self) -> int:
        return int(sum(self.skipped.values()))

    def merge(self, other: "ProcessingReport") -> "ProcessingReport":
        """Accumulate ``other`` into this report (in place) and return ``self``."""
        self.accepted += other.accepted
        self.skipped.update(other.skipped)
        self.unavailable.extend(other.unavailable)
        return self

    def as_dict(self) -> Dict[str, object]:
        return {
            "accepted": self.accepted,
            "skipped": dict(self.skipped),
            "unavailable": list(self.unavailable),
        }

    def log_summary(self, level: int = logging.INFO) -> None:
        logger.log(
            level,
            "%s: accepted=%d skipped=%d %s%s",
            self.label,
            self.accepted,
            self.n_skipped,
            dict(self.skipped) if self.skipped else "",
            f" unavailable={self.unavailable}" if self.unavailable else "",
        )
