from __future__ import annotations
"""
Pixel offset table used by the tree tests.

Every internal tree node holds an index into this table; the test at that node
compares the pixel at (x + dx, y + dy) against the centre pixel (x, y).
The table is built once before learning and never modified afterwards.
"""

from typing import Iterable, Optional, Sequence, Tuple

import numpy as np


# (K, 2) integer array of (dx, dy)
OffsetTable = np.ndarray


def create_offsets(radius: Optional[float] = None, offsets: Optional[Sequence[Sequence[int]]] = None) -> OffsetTable:
    """
    Build the offset table.

    Args:
        radius: include every integer offset with 0 < dx^2 + dy^2 <= radius^2,
                in raster order (dy outer, dx inner).
        offsets: explicit list of [dx, dy] pairs; takes precedence over radius.

    Returns:
        int64 array of shape (K, 2).
    """
    if offsets is not None:
        table = np.asarray(offsets, dtype=np.int64)
        if table.ndim != 2 or table.shape[1] != 2 or len(table) == 0:
            raise ValueError("offsets must be a non-empty list of [dx, dy] pairs")
        if np.any((table[:, 0] == 0) & (table[:, 1] == 0)):
            raise ValueError("offset (0, 0) compares the centre pixel with itself")
        if len({(int(dx), int(dy)) for dx, dy in table}) != len(table):
            raise ValueError("offsets must be unique")
        return table

    if radius is None or radius < 1:
        raise ValueError("radius must be >= 1 when no explicit offsets are given")
    r = int(np.floor(radius))
    r2 = float(radius) ** 2
    pts = [
        (dx, dy)
        for dy in range(-r, r + 1)
        for dx in range(-r, r + 1)
        if 0 < dx * dx + dy * dy <= r2
    ]
    return np.asarray(pts, dtype=np.int64)


def offsets_bbox(table: OffsetTable, indices: Optional[Iterable[int]] = None) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """
    Bounding box ((xmin, ymin), (xmax, ymax)) of the selected offsets, always
    including the centre pixel.
    """
    idx = list(indices) if indices is not None else list(range(len(table)))
    if not idx:
        return (0, 0), (0, 0)
    sel = table[np.asarray(idx, dtype=np.int64)]
    xmin = min(0, int(sel[:, 0].min()))
    ymin = min(0, int(sel[:, 1].min()))
    xmax = max(0, int(sel[:, 0].max()))
    ymax = max(0, int(sel[:, 1].max()))
    return (xmin, ymin), (xmax, ymax)


def draw_offsets(table: OffsetTable) -> str:
    """
    ASCII map of the table: '#' is the centre, letters/digits label offsets by index
    (cycling through 0-9a-zA-Z), '.' is unused.
    """
    labels = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
    (xmin, ymin), (xmax, ymax) = offsets_bbox(table)
    w = xmax - xmin + 1
    h = ymax - ymin + 1
    grid = [["." for _ in range(w)] for _ in range(h)]
    grid[-ymin][-xmin] = "#"
    for i, (dx, dy) in enumerate(table):
        grid[int(dy) - ymin][int(dx) - xmin] = labels[i % len(labels)]
    return "\n".join(" ".join(row) for row in grid)
