import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import pstats

import pytest

from track_creator.profiling import _resolve_sort_key, prof


@pytest.mark.parametrize("alias, key", [
    ("tottime", pstats.SortKey.TIME),
    ("cumtime", pstats.SortKey.CUMULATIVE),
    ("file", pstats.SortKey.FILENAME),
    ("filename", pstats.SortKey.FILENAME),
    ("NFL", pstats.SortKey.NFL),
    ("unknown", pstats.SortKey.TIME),
    (pstats.SortKey.LINE, pstats.SortKey.LINE),
])
def test_sort_aliases(alias, key):
    assert _resolve_sort_key(alias) == key


def test_report_sorted_by_file(tmp_path):
    out = tmp_path / "prof.txt"
    with prof(True, sort="file", limit=5, out_path=str(out)) as pr:
        assert pr is not None
        sum(i * i for i in range(1000))
    text = out.read_text()
    assert text.startswith("[prof] elapsed=")
    assert "sort=file" in text


def test_disabled_yields_none():
    with prof(False) as pr:
        assert pr is None
