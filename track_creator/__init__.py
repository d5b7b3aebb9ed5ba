__all__ = [
    "Track", "Vertex", "TrackState", "TrackDescriptor", "Event", "read_event", "list_events",
    "Geometry", "load_geometry",
    "Settings", "load_run_config",
    "Helix", "FCT", "HelixFitResult", "fit_helix", "fit_helix_two_points",
    "project_to_calorimeter", "calorimeter_intersection",
    "track_reaches_calorimeter", "count_tracker_hits",
    "PfoUsage", "define_track_pfo_usage",
    "TrackAssociations", "RelationshipExtractor", "VertexCategory",
    "TrackSink", "TrackRecorder",
    "TrackCreator", "EventResult", "fit_track_helices", "minimum_track_hits",
    "Outcome", "ProcessingReport", "Status",
    "TrackCreatorError", "CollectionNotFoundError", "MalformedRecordError", "UnknownParticleError",
    "InvalidGeometryError", "InsufficientHitsError", "HelixError", "HelixFitError",
]

# Data model & event source
from .data import Track, Vertex, TrackState, TrackDescriptor, Event, read_event, list_events

# Geometry & configuration
from .geometry import Geometry, load_geometry
from .config import Settings, load_run_config

# Helix model & fitting
from .helix import Helix, FCT
from .helix_fit import HelixFitResult, fit_helix, fit_helix_two_points

# Classification
from .projection import project_to_calorimeter, calorimeter_intersection
from .reach import track_reaches_calorimeter, count_tracker_hits
from .pfo_usage import PfoUsage, define_track_pfo_usage

# Relationships & builder
from .relationships import TrackAssociations, RelationshipExtractor, VertexCategory
from .sink import TrackSink, TrackRecorder
from .track_creator import TrackCreator, EventResult, fit_track_helices, minimum_track_hits

# Errors & outcomes
from .outcome import Outcome, ProcessingReport, Status
from .exceptions import (
    TrackCreatorError,
    CollectionNotFoundError,
    MalformedRecordError,
    UnknownParticleError,
    InvalidGeometryError,
    InsufficientHitsError,
    HelixError,
    HelixFitError,
)
