from __future__ import annotations

import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from .models import Segment
from .utils import read_json, write_json

logger = logging.getLogger(__name__)

_SEGMENT_FIELDS = {f.name for f in fields(Segment)}
_ALIASES = {"chrom": "chromosome", "start": "begin"}


def segment_from_mapping(data: Mapping[str, Any]) -> Segment:
    """Build a Segment from a JSON object; ``chrom``/``start`` are accepted as aliases."""
    if not isinstance(data, Mapping):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        name = _ALIASES.get(key, key)
        if name not in _SEGMENT_FIELDS:
            raise ValueError(f"Unknown segment field '{key}'")
        kwargs[name] = value
    missing = [k for k in ("chromosome", "begin", "end", "counts") if k not in kwargs]
    if missing:
        raise ValueError(f"Segment is missing required fields: {', '.join(missing)}")
    return Segment(**kwargs)


def segment_to_jsonable(segment: Segment) -> Dict[str, Any]:
    return asdict(segment)


def load_segments_json(path: str | Path) -> List[Segment]:
    """Load segments from a JSON list, or an object with a ``segments`` list (.json or .json.gz)."""
    data = read_json(path)
    if isinstance(data, dict):
        data = data.get("segments")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of segments or an object with a 'segments' list")

    segments: List[Segment] = []
    for i, item in enumerate(data):
        try:
            segments.append(segment_from_mapping(item))
        except (TypeError, ValueError) as e:
            raise ValueError(f"{path}: segment #{i}: {e}") from e
    logger.info("Loaded %d segments from %s", len(segments), path)
    return segments


def write_segments_json(path: str | Path, segments: Sequence[Segment], **extra: Any) -> None:
    write_json(path, {"segments": [segment_to_jsonable(s) for s in segments], **extra})
