from __future__ import annotations

import cProfile
import io
import logging
import pstats
import time
from contextlib import contextmanager
from typing import Iterator, Optional, Union

__all__ = ["prof"]

_SORT_KEYS = {
    "tottime": pstats.SortKey.TIME,
    "cumtime": pstats.SortKey.CUMULATIVE,
    "calls": pstats.SortKey.CALLS,
    "ncalls": pstats.SortKey.CALLS,
    "pcalls": pstats.SortKey.PCALLS,
    "name": pstats.SortKey.NAME,
    "file": pstats.SortKey.FILENAME,
    "filename": pstats.SortKey.FILENAME,
    "line": pstats.SortKey.LINE,
    "nfl": pstats.SortKey.NFL,
}


def _resolve_sort_key(sort: Union[str, pstats.SortKey]) -> pstats.SortKey:
    """Map a ``pstats`` sort alias (``"tottime"``, ``"cumtime"``, ...) to a :class:`pstats.SortKey`."""
    if isinstance(sort, pstats.SortKey):
        return sort
    return _SORT_KEYS.get(str(sort).lower(), pstats.SortKey.TIME)


@contextmanager
def prof(enable: bool = False, *, sort: Union[str, pstats.SortKey] = "tottime", limit: Optional[int] = 25,
         out_path: Optional[str] = None, dump_path: Optional[str] = None,
         logger: Optional[logging.Logger] = None) -> Iterator[Optional[cProfile.Profile]]:
    r"""
    CPU profiler context manager around the track-building phase.

    Parameters
    ----------
    enable : bool, default: False
        If ``False`` the block runs unprofiled and ``None`` is yielded.
    sort : str or pstats.SortKey, default: ``"tottime"``
    limit : int or None, default: 25
        Rows printed; ``None`` prints everything.
    out_path : str, optional
        Write the text report to this file instead of printing/logging it.
    dump_path : str, optional
        Also write binary ``.pstats`` output (for snakeviz / gprof2dot).
    logger : logging.Logger, optional
        Emit the text report at ``INFO`` through this logger.

    Yields
    ------
    cProfile.Profile or None
    """
    if not enable:
        yield None
        return

    pr = cProfile.Profile()
    t0 = time.perf_counter()
    pr.enable()
    try:
        yield pr
    finally:
        pr.disable()
        elapsed = time.perf_counter() - t0

        s = io.StringIO()
        ps = pstats.Stats(pr, stream=s).strip_dirs().sort_stats(_resolve_sort_key(sort))
        ps.print_stats(limit if limit is not None else 1_000_000)
        text = f"[prof] elapsed={elapsed:.6f}s sort={sort} limit={limit}\n" + s.getvalue()

        if dump_path:
            ps.dump_stats(dump_path)
        if out_path:
            with open(out_path, "w", encoding="utf-8") as f:
                f.write(text)
        elif logger is not None:
            logger.info(text)
        else:
            print(text, end="")
