import logging
from typing import Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.patches as patches
from matplotlib import cm

from track_creator.data import TrackDescriptor
from track_creator.geometry import Geometry
from track_creator.projection import barrel_faces

__all__ = ["plot_descriptors_xy", "plot_descriptors_rz", "plot_event"]


def _show_and_close(fig, *, do_show: bool = True) -> None:
    r"""
    Show a Matplotlib figure (optionally) and always close it.

    Safe in headless mode, where ``plt.show()`` is patched to a no-op by
    :func:`track_creator.main.apply_plotting_guard`.
    """
    fig.tight_layout()
    if do_show:
        plt.show()
    plt.close(fig)


def _calorimeter_outline_xy(ax, geometry: Geometry) -> None:
    if geometry.ecal_barrel_symmetry > 0:
        # face corners sit where neighbouring face lines meet
        n = geometry.ecal_barrel_symmetry
        corner_r = geometry.ecal_barrel_r / np.cos(np.pi / n)
        corners = []
        for x0, y0, _, _ in barrel_faces(geometry):
            phi = np.arctan2(y0, x0) + np.pi / n
            corners.append((corner_r * np.cos(phi), corner_r * np.sin(phi)))
        ax.add_patch(patches.Polygon(corners, closed=True, fill=False, ec="grey", lw=1.2, label="ECal barrel"))
    else:
        ax.add_patch(patches.Circle((0.0, 0.0), geometry.ecal_barrel_r, fill=False, ec="grey", lw=1.2,
                                    label="ECal barrel"))
    ax.add_patch(patches.Circle((0.0, 0.0), geometry.tpc_inner_r, fill=False, ec="lightgrey", ls="--"))
    ax.add_patch(patches.Circle((0.0, 0.0), geometry.tpc_outer_r, fill=False, ec="lightgrey", ls="--",
                                label="TPC"))


def plot_descriptors_xy(descriptors: Sequence[TrackDescriptor], geometry: Geometry,
                        max_tracks: Optional[int] = None, show: bool = True):
    r"""
    Transverse view: hits, start/end states and calorimeter entry point per track.

    Tracks that may form a PFO are drawn solid, the others faded. The
    calorimeter front face is drawn as the barrel polygon (or circle) and the
    main tracker as dashed circles.

    Returns
    -------
    matplotlib.figure.Figure
    """
    descs = list(descriptors)[:max_tracks] if max_tracks is not None else list(descriptors)
    fig, ax = plt.subplots(figsize=(8, 8))
    colors = cm.tab20(np.linspace(0.0, 1.0, max(len(descs), 1)))
    for d, c in zip(descs, colors):
        alpha = 1.0 if d.can_form_pfo else 0.3
        h = d.track.hits
        ax.scatter(h[:, 0], h[:, 1], s=6, color=c, alpha=alpha)
        pts = np.vstack([d.state_at_start.position, d.state_at_end.position, d.state_at_calorimeter.position])
        ax.plot(pts[:, 0], pts[:, 1], "-", color=c, alpha=alpha, lw=0.8)
        ax.plot(pts[2, 0], pts[2, 1], "x", color=c, alpha=alpha)
    _calorimeter_outline_xy(ax, geometry)
    lim = 1.1 * max(geometry.ecal_barrel_r / np.cos(np.pi / max(geometry.ecal_barrel_symmetry, 3)),
                    geometry.tpc_outer_r)
    ax.set_xlim(-lim, lim)
    ax.set_ylim(-lim, lim)
    ax.set_aspect("equal")
    ax.set_xlabel("x [mm]")
    ax.set_ylabel("y [mm]")
    ax.set_title(f"Track descriptors (x-y), {len(descs)} tracks")
    ax.legend(loc="upper right")
    _show_and_close(fig, do_show=show)
    return fig


def plot_descriptors_rz(descriptors: Sequence[TrackDescriptor], geometry: Geometry,
                        max_tracks: Optional[int] = None, show: bool = True):
    r"""
    Longitudinal view :math:`(z, r)` with :math:`r=\sqrt{x^2+y^2}`, including
    the main tracker envelope and the calorimeter barrel/endcap front faces.
    """
    descs = list(descriptors)[:max_tracks] if max_tracks is not None else list(descriptors)
    fig, ax = plt.subplots(figsize=(11, 5))
    for d in descs:
        h = d.track.hits
        style = dict(s=5, alpha=0.9 if d.reaches_calorimeter else 0.3)
        sc = ax.scatter(h[:, 2], np.hypot(h[:, 0], h[:, 1]), **style)
        calo = d.state_at_calorimeter.position
        ax.plot(calo[2], np.hypot(calo[0], calo[1]), "x", color=sc.get_facecolor()[0])

    zt, ri, ro = geometry.tpc_max_drift, geometry.tpc_inner_r, geometry.tpc_outer_r
    ax.add_patch(patches.Rectangle((-zt, ri), 2 * zt, ro - ri, fill=False, ec="lightgrey", ls="--", label="TPC"))
    ze, rb = geometry.ecal_endcap_z, geometry.ecal_barrel_r
    ax.plot([-ze, ze], [rb, rb], color="grey", lw=1.2, label="ECal front face")
    ax.plot([ze, ze], [0.0, rb], color="grey", lw=1.2)
    ax.plot([-ze, -ze], [0.0, rb], color="grey", lw=1.2)
    ax.set_xlabel("z [mm]")
    ax.set_ylabel("r [mm]")
    ax.set_title(f"Track descriptors (r-z), {len(descs)} tracks")
    ax.legend(loc="upper right")
    _show_and_close(fig, do_show=show)
    return fig


def plot_event(descriptors: Sequence[TrackDescriptor], geometry: Geometry,
               max_tracks: Optional[int] = None, show: bool = True) -> None:
    logging.info("Plotting %d track descriptor(s)...", len(descriptors))
    plot_descriptors_xy(descriptors, geometry, max_tracks=max_tracks, show=show)
    plot_descriptors_rz(descriptors, geometry, max_tracks=max_tracks, show=show)
