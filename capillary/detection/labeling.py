"""
Connected-component labeling with union-find.

Two-pass raster labeling under 4-connectivity: the first pass looks only at
each pixel's left and top neighbours, the second resolves every provisional
label to its union-find root. Pixels that touch only diagonally are never
merged.

The first pass works on horizontal runs of foreground pixels: every pixel of
a run after the first has a labelled left neighbour, so the run shares one
label, and the run's top neighbours are exactly the previous row's runs that
overlap it in x.
"""

from typing import List, Tuple

import numpy as np

from capillary.utils.logging import get_logger

logger = get_logger(__name__)


class UnionFind:
    """
    Disjoint sets over provisional labels ``1..n``.

    Label 0 is reserved for background. ``union`` hangs the larger root
    under the smaller one, so a class's root is its smallest label.
    """

    def __init__(self):
        self.parent: List[int] = [0]

    def __len__(self) -> int:
        return len(self.parent) - 1

    def make_set(self) -> int:
        """Create a new singleton class and return its label."""
        label = len(self.parent)
        self.parent.append(label)
        return label

    def find(self, label: int) -> int:
        parent = self.parent
        while parent[label] != label:
            parent[label] = parent[parent[label]]
            label = parent[label]
        return label

    def union(self, a: int, b: int) -> int:
        """Merge the classes of ``a`` and ``b``; return the surviving root."""
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return root_a
        if root_a < root_b:
            self.parent[root_b] = root_a
            return root_a
        self.parent[root_a] = root_b
        return root_b


def _row_runs(row: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Start (inclusive) and end (exclusive) columns of foreground runs."""
    padded = np.concatenate(([0], row.astype(np.int8), [0])).astype(np.int8)
    edges = np.diff(padded)
    return np.flatnonzero(edges == 1), np.flatnonzero(edges == -1)


def connected_components(mask: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Label 4-connected foreground regions of a binary mask.

    Args:
        mask: ``(H, W)`` mask, nonzero = foreground

    Returns:
        Tuple of (labels, count): an ``(H, W)`` int32 label map where 0 is
        background and components are numbered ``1..count`` in raster order
        of their first pixel, and the number of components.
    """
    fg = np.asarray(mask).astype(bool)
    height, width = fg.shape
    labels = np.zeros((height, width), dtype=np.int32)
    sets = UnionFind()

    prev_runs: List[Tuple[int, int, int]] = []
    for y in range(height):
        row = fg[y]
        if not row.any():
            prev_runs = []
            continue

        starts, ends = _row_runs(row)
        runs = []
        j = 0
        for start, end in zip(starts.tolist(), ends.tolist()):
            # Skip previous-row runs entirely to the left of this one
            while j < len(prev_runs) and prev_runs[j][1] <= start:
                j += 1

            k = j
            while k < len(prev_runs) and prev_runs[k][0] < end:
                k += 1
            top_labels = [run[2] for run in prev_runs[j:k]]

            if not top_labels:
                label = sets.make_set()
            else:
                label = min(top_labels)
                for top in top_labels:
                    sets.union(label, top)

            labels[y, start:end] = label
            runs.append((start, end, label))
        prev_runs = runs

    n_provisional = len(sets)
    if n_provisional == 0:
        return labels, 0

    # Second pass: provisional label -> root -> dense 1..count
    roots = np.array([0] + [sets.find(i) for i in range(1, n_provisional + 1)], dtype=np.int64)
    unique_roots = np.unique(roots[1:])
    dense = np.zeros(n_provisional + 1, dtype=np.int32)
    dense[unique_roots] = np.arange(1, len(unique_roots) + 1, dtype=np.int32)
    resolved = dense[roots]
    labels = resolved[labels]

    count = int(len(unique_roots))
    logger.debug("Labeled %d components (%d provisional labels)", count, n_provisional)
    return labels.astype(np.int32), count
