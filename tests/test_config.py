import json
from pathlib import Path

import pytest

from cnvmerge.config import MergeConfig, config_from_mapping, load_config
from cnvmerge.qscore import QScoreMethod


def test_defaults():
    config = MergeConfig()
    assert config.minimum_call_size == 0
    assert config.maximum_merge_span == 10_000
    assert config.use_span_merge is False
    assert config.qscore_method is QScoreMethod.LOGISTIC
    assert config.rescore_after_merge is True


def test_method_string_is_parsed():
    config = config_from_mapping({"qscore_method": "LogisticGermline", "minimum_call_size": 5000})
    assert config.qscore_method is QScoreMethod.LOGISTIC_GERMLINE
    assert config.to_jsonable()["qscore_method"] == "LogisticGermline"


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError, match="Unknown config keys: min_size"):
        config_from_mapping({"min_size": 10})


@pytest.mark.parametrize("key,value", [("minimum_call_size", -1), ("maximum_merge_span", 1.5), ("quality_filter_threshold", True)])
def test_invalid_values_are_rejected(key, value):
    with pytest.raises(ValueError, match=key):
        MergeConfig(**{key: value})


def test_overrides_ignore_none():
    config = MergeConfig(minimum_call_size=5000).with_overrides(minimum_call_size=None, use_span_merge=True)
    assert config.minimum_call_size == 5000
    assert config.use_span_merge is True


def test_load_config(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"maximum_merge_span": 2000, "use_span_merge": True}), encoding="utf-8")
    config = load_config(path)
    assert config.maximum_merge_span == 2000
    assert config.use_span_merge is True

    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError, match="JSON object"):
        load_config(path)


def test_non_string_method_is_a_value_error():
    with pytest.raises(ValueError, match="qscore method"):
        config_from_mapping({"qscore_method": 5})
