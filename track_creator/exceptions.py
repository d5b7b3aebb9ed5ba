from __future__ import annotations

__all__ = [
    "TrackCreatorError",
    "CollectionNotFoundError",
    "MalformedRecordError",
    "UnknownParticleError",
    "InvalidGeometryError",
    "InsufficientHitsError",
    "HelixError",
    "HelixFitError",
]


class TrackCreatorError(Exception):
    """Base class for all errors raised by :mod:`track_creator`."""


class CollectionNotFoundError(TrackCreatorError, KeyError):
    """A named collection cannot be read from the event."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"collection '{self.name}' is not available"


class MalformedRecordError(TrackCreatorError, ValueError):
    """A single vertex or track entry cannot be interpreted."""


class UnknownParticleError(MalformedRecordError):
    """An identity code has no entry in the mass table."""


class InvalidGeometryError(TrackCreatorError, ValueError):
    """Detector geometry parameters are missing or inconsistent (fatal for the run)."""


class InsufficientHitsError(TrackCreatorError, ValueError):
    """Fewer hits than a helix fit needs."""


class HelixError(TrackCreatorError, ValueError):
    """A helix cannot be constructed from the given parameters."""


class HelixFitError(HelixError):
    """A least-squares helix fit failed or is degenerate."""
