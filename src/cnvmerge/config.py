"""Run parameters for segment consolidation.

Parameters can be supplied as a JSON file, e.g.::

    {
      "minimum_call_size": 5000,
      "qscore_method": "LogisticGermline",
      "quality_filter_threshold": 10
    }

Command-line flags override values from the file.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from .merge import DEFAULT_MAXIMUM_MERGE_SPAN
from .qscore import QScoreMethod, parse_qscore_method
from .utils import read_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeConfig:
    minimum_call_size: int = 0
    maximum_merge_span: int = DEFAULT_MAXIMUM_MERGE_SPAN
    use_span_merge: bool = False
    qscore_method: QScoreMethod = QScoreMethod.LOGISTIC
    score_before_merge: bool = False
    rescore_after_merge: bool = True
    quality_filter_threshold: int = 10
    minimum_pass_length: int = 10_000

    def __post_init__(self) -> None:
        # Allow "Logistic"-style strings from JSON / argparse.
        object.__setattr__(self, "qscore_method", parse_qscore_method(self.qscore_method))
        for name in ("minimum_call_size", "maximum_merge_span", "quality_filter_threshold", "minimum_pass_length"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Config '{name}' must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"Config '{name}' must be >= 0, got {value}")

    def with_overrides(self, **overrides: Any) -> "MergeConfig":
        """Return a copy with non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def to_jsonable(self) -> Dict[str, Any]:
        d = asdict(self)
        d["qscore_method"] = self.qscore_method.value
        return d


def config_from_mapping(data: Mapping[str, Any]) -> MergeConfig:
    known = {f.name for f in fields(MergeConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)} (known: {', '.join(sorted(known))})")
    return MergeConfig(**dict(data))


def load_config(path: str | Path) -> MergeConfig:
    data = read_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    config = config_from_mapping(data)
    logger.info("Loaded config from %s", path)
    return config
