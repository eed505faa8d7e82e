"""
JSON helpers for loop results and configuration files.

Detection produces numpy scalars (centroids, areas), enum morphologies and
DetectedLoop records; these helpers turn all of them into plain JSON and
write result files so a reader never sees a half-written document.
"""

import json
import math
import os
import tempfile
from enum import Enum
from pathlib import Path

import numpy as np

_MISSING = object()


def _native(obj):
    """Plain-Python form of a numpy scalar/array or enum, else _MISSING."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (float, np.floating)):
        value = float(obj)
        # JSON has no NaN/Infinity
        return value if math.isfinite(value) else None
    return _MISSING


class NumpyEncoder(json.JSONEncoder):
    """
    Encoder for numpy scalars and arrays, enums and ``to_dict()`` records.

    Usage::

        json.dumps({"loops": loops, "area": np.int64(120)}, cls=NumpyEncoder)
    """

    def default(self, obj):
        value = _native(obj)
        if value is not _MISSING:
            return value
        if callable(getattr(obj, "to_dict", None)):
            return obj.to_dict()
        return super().default(obj)


def sanitize_for_json(obj):
    """
    Return a copy of ``obj`` built from plain JSON types.

    Python floats are serialisable, so ``float('nan')`` never reaches
    ``JSONEncoder.default``; the whole structure is converted up front
    instead, with non-finite floats becoming ``None``. Tuples become lists.
    """
    if isinstance(obj, dict):
        return {key: sanitize_for_json(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(value) for value in obj]
    value = _native(obj)
    if value is _MISSING:
        return obj
    if isinstance(value, list):
        return sanitize_for_json(value)
    return value


def atomic_json_dump(data, filepath, cls=NumpyEncoder, sanitize=True, indent=None):
    """
    Write ``data`` as JSON to ``filepath`` via a sibling temp file.

    The temp file is renamed over the target only after a complete write,
    so an interrupted or failing dump leaves any previous file intact.

    Args:
        data: Object to serialise
        filepath: Target path; parent directories are created
        cls: Encoder class (default NumpyEncoder)
        sanitize: Convert with :func:`sanitize_for_json` first
        indent: Passed to ``json.dump``

    Returns:
        The target Path
    """
    target = Path(filepath)
    target.parent.mkdir(parents=True, exist_ok=True)
    if sanitize:
        data = sanitize_for_json(data)

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, cls=cls, indent=indent)
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return target
