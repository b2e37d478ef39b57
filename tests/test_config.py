from __future__ import annotations

import textwrap
from pathlib import Path

from solaris.config import (
    as_bool,
    as_positive_int,
    ignore_patterns,
    load_config,
    merge_payload,
    normalize_name_list,
    plan_defaults,
    solaris_defaults,
    split_patterns,
)
from solaris.terraform import DEFAULT_IGNORE_PATTERNS


def test_defaults_read_from_toml(tmp_path: Path) -> None:
    (tmp_path / "solaris.toml").write_text(
        textwrap.dedent(
            """
            [solaris]
            ignore = ["\\\\.terraform", "sandbox{1,2}"]
            debug = true
            jobs = 4

            [plan]
            roots = "net, db"
            terraform = "tofu"
            """
        ).strip()
        + "\n"
    )
    section = solaris_defaults(root=tmp_path)
    assert ignore_patterns(section) == ["\\.terraform", "sandbox{1,2}"]
    assert as_bool(section["debug"]) is True
    assert as_positive_int(section["jobs"]) == 4
    plan_section = plan_defaults(root=tmp_path)
    assert normalize_name_list(plan_section["roots"]) == ["net", "db"]
    assert plan_section["terraform"] == "tofu"


def test_missing_or_broken_config_is_empty(tmp_path: Path) -> None:
    assert load_config(root=tmp_path) == {}
    broken = tmp_path / "broken.toml"
    broken.write_text("[solaris\nignore = ")
    assert load_config(config_path=broken) == {}
    assert solaris_defaults(config_path=broken) == {}


def test_ignore_patterns_fall_back_to_builtin() -> None:
    assert ignore_patterns(None) == list(DEFAULT_IGNORE_PATTERNS)
    assert ignore_patterns({"debug": True}) == list(DEFAULT_IGNORE_PATTERNS)
    assert ignore_patterns({"ignore": "a, b"}) == ["a", "b"]
    assert ignore_patterns({"ignore": []}) == []


def test_merge_payload_prefers_explicit_values() -> None:
    merged = merge_payload(
        {"ignore": None, "jobs": 2, "debug": False},
        {"ignore": ["x"], "jobs": 8, "debug": True},
    )
    assert merged == {"ignore": ["x"], "jobs": 2, "debug": False}


def test_scalar_coercions() -> None:
    assert as_bool("yes") is True
    assert as_bool("off") is False
    assert as_bool(0) is False
    assert as_positive_int(None) == 1
    assert as_positive_int(0) == 1
    assert as_positive_int("3") == 3
    assert as_positive_int(True) == 1


def test_split_patterns_keeps_counted_repetition() -> None:
    assert split_patterns("env{1,2}, sandbox") == ["env{1,2}", "sandbox"]
    assert split_patterns(r"a{2,}\.tf,,b") == [r"a{2,}\.tf", "b"]
    assert ignore_patterns({"ignore": "ap{1,2}, modules"}) == ["ap{1,2}", "modules"]
