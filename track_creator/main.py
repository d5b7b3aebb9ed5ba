#!/usr/bin/env python3
r"""
Track creator runner (headless-safe).

Loads events from CSV tables, reads the detector geometry and processing
settings from a JSON run configuration, converts every event's tracks into
track descriptors and optionally writes them (and the declared track
relationships) back to CSV.

Per event the pipeline is the strict two-phase sequence

1. secondary-vertex relationship extraction
   (:meth:`track_creator.track_creator.TrackCreator.create_track_associations`),
2. descriptor building over all configured track collections
   (:meth:`track_creator.track_creator.TrackCreator.create_tracks`).

CLI overview
------------
See :func:`build_parser` for all options. Typical usage:

.. code-block:: bash

   track-creator -f data/ -n 10 --config config.json -o out/
   track-creator -f "data/event0000*-tracks.csv" --profile --profile-out prof.txt
"""
from __future__ import annotations

import argparse
import logging
import os
import time
from pathlib import Path
from typing import List

import numpy as np
import pandas as pd

import track_creator.data as trk_data
from track_creator.config import load_run_config
from track_creator.outcome import ProcessingReport
from track_creator.profiling import prof
from track_creator.sink import TrackRecorder
from track_creator.track_creator import TrackCreator


def build_parser() -> argparse.ArgumentParser:
    r"""
    Construct the command-line interface of the track creator.

    Returns
    -------
    argparse.ArgumentParser
    """
    p = argparse.ArgumentParser(description="Convert tracker trajectories into particle-flow track descriptors.")
    p.add_argument(
        "-f", "--file", type=str, default="data",
        help=(
            "Directory holding <event>-tracks.csv / -hits.csv / -vertices.csv tables, a single "
            "*-tracks.csv file, or a glob over such files. Default: data"
        ),
    )
    p.add_argument("-n", "--n-events", type=int, default=None,
                   help="Number of events to run, in natural order (default: all).")
    p.add_argument("--config", type=str, default="config.json",
                   help="Path to JSON run configuration with 'geometry' and 'settings' blocks "
                        "(default: config.json).")
    p.add_argument("-o", "--output", type=str, default=None,
                   help="If set, write <event>-descriptors.csv and <event>-relationships.csv to this directory.")
    p.add_argument("--no-relationships", dest="relationships", action="store_false", default=True,
                   help="Do not declare parent/daughter and sibling track relationships.")
    p.add_argument("--plot", action="store_true", default=False,
                   help="Show descriptor plots for the first event (default: False).")
    p.add_argument("--profile", action="store_true", default=False,
                   help="Enable cProfile around the track-creation phase.")
    p.add_argument("--profile-out", type=str, default=None,
                   help="If set, write pstats text to this file.")
    p.add_argument("-v", "--verbose", action="store_true",
                   help="Enable verbose logging.")
    return p


def setup_logging(verbose: bool = False) -> None:
    r"""
    Configure process-wide logging.

    Format is ``'%(asctime)s | %(levelname)-8s | %(message)s'`` with
    ``%H:%M:%S`` timestamps; ``DEBUG`` if ``verbose`` else ``INFO``.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


def apply_plotting_guard(enable_plots: bool) -> None:
    r"""
    Enforce a headless-safe Matplotlib configuration when plotting is disabled.

    Must be called before :mod:`track_creator.plotting` is imported.
    """
    if enable_plots:
        return
    os.environ.setdefault("MPLBACKEND", "Agg")
    import matplotlib
    matplotlib.use("Agg", force=True)
    import matplotlib.pyplot as _plt  # noqa: WPS433
    _plt.ioff()
    _plt.show = lambda *a, **k: None  # type: ignore[assignment]


def relationships_frame(recorder: TrackRecorder) -> pd.DataFrame:
    """Declared relationships as ``kind, first_track_id, second_track_id`` rows."""
    rows = [{"kind": "parent_daughter", "first_track_id": p.track_id, "second_track_id": d.track_id}
            for p, d in recorder.parent_daughter]
    rows += [{"kind": "sibling", "first_track_id": a.track_id, "second_track_id": b.track_id}
             for a, b in recorder.siblings]
    return pd.DataFrame(rows, columns=["kind", "first_track_id", "second_track_id"])


def main() -> None:
    r"""
    Entry point for the ``track-creator`` console script.

    Pipeline
    --------
    1. Parse CLI (:func:`build_parser`), set up logging (:func:`setup_logging`)
       and the headless plotting guard (:func:`apply_plotting_guard`).
    2. Resolve events (:func:`track_creator.data.list_events`).
    3. Read geometry and settings (:func:`track_creator.config.load_run_config`);
       ``--no-relationships`` overrides ``should_form_track_relationships``.
    4. For each event: read the tables, run
       :meth:`~track_creator.track_creator.TrackCreator.process_event` (inside
       :func:`~track_creator.profiling.prof` when ``--profile``), log per-event
       statistics and optionally write CSV outputs.
    5. Log aggregate statistics over all events.

    Raises
    ------
    FileNotFoundError
        If no event matches ``--file``.
    InvalidGeometryError
        If the run configuration describes an inconsistent detector.
    """
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)

    events = trk_data.list_events(args.file, args.n_events)
    if not events:
        raise FileNotFoundError(f"No events found for --file={args.file}")
    if len(events) > 1:
        logging.info("Running on %d events. First: %s", len(events), events[0][1])
    else:
        logging.info("Running on event: %s", events[0][1])

    apply_plotting_guard(args.plot)

    cfg_path = Path(args.config)
    logging.info("Reading config from %s", cfg_path)
    overrides = {} if args.relationships else {"settings": {"should_form_track_relationships": False}}
    geometry, settings = load_run_config(cfg_path, overrides)

    out_dir = Path(args.output) if args.output else None
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)

    tracks_all = ProcessingReport("tracks (all events)")
    vertices_all = ProcessingReport("vertices (all events)")
    n_relationships: List[int] = []
    t_build: List[float] = []

    for idx, (directory, name) in enumerate(events, start=1):
        logging.info("=== Event %d/%d: %s ===", idx, len(events), name)
        event = trk_data.read_event(directory, name)

        recorder = TrackRecorder()
        creator = TrackCreator(geometry, settings, recorder)

        t0 = time.time()
        with prof(args.profile, out_path=args.profile_out):
            result = creator.process_event(event)
        t_build.append(time.time() - t0)

        result.vertex_report.log_summary()
        result.track_report.log_summary()
        tracks_all.merge(result.track_report)
        vertices_all.merge(result.vertex_report)
        n_relationships.append(recorder.n_relationships)

        families = recorder.decay_families()
        if families:
            logging.info("Event %s: %d relationship(s) in %d decay famil%s, largest has %d track(s)",
                         name, recorder.n_relationships, len(families),
                         "y" if len(families) == 1 else "ies", len(families[0]))

        if out_dir is not None:
            desc_path = out_dir / f"{name}-descriptors.csv"
            recorder.to_frame().to_csv(desc_path, index=False)
            relationships_frame(recorder).to_csv(out_dir / f"{name}-relationships.csv", index=False)
            logging.info("Wrote %d descriptor(s) to %s", len(recorder.descriptors), desc_path)

        if idx == 1 and args.plot:
            import track_creator.plotting as trk_plot  # noqa: WPS433
            trk_plot.plot_event(recorder.descriptors, geometry)

    if len(events) > 1:
        logging.info("=== Aggregate over %d events ===", len(events))
        tracks_all.log_summary()
        vertices_all.log_summary()
        logging.info("Mean relationships per event: %.2f", float(np.mean(n_relationships)))
        logging.info("Mean build time per event: %.3fs", float(np.mean(t_build)))


if __name__ == "__main__":
    main()
