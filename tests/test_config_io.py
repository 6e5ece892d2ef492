import pytest

from sheet_omr.config_io import load_config_any, load_settings
from sheet_omr.scoring_defaults import DEFAULTS, apply_overrides


def test_yaml_overrides(tmp_path):
    p = tmp_path / "scan.yaml"
    p.write_text("binarize_level: 150\ncolumn_counts: [4]\nworkers: 3\n", encoding="utf-8")
    s = load_settings(p)
    assert s.binarize_level == 150
    assert s.column_counts == (4,)
    assert s.workers == 3
    assert s.top_factors == DEFAULTS.top_factors


def test_json_overrides(tmp_path):
    p = tmp_path / "scan.json"
    p.write_text('{"min_threshold": 0.05, "choices": "ABCDE"}', encoding="utf-8")
    s = load_settings(p)
    assert s.min_threshold == 0.05
    assert s.choices == "ABCDE"


def test_nested_scan_section(tmp_path):
    p = tmp_path / "cfg.yml"
    p.write_text("scan:\n  search_deadline_s: 2.5\n", encoding="utf-8")
    assert load_settings(p).search_deadline_s == 2.5


def test_unknown_extension_falls_back_to_json(tmp_path):
    p = tmp_path / "cfg.txt"
    p.write_text('{"work_width": 1000}', encoding="utf-8")
    assert load_config_any(p) == {"work_width": 1000}


def test_empty_file_is_defaults(tmp_path):
    p = tmp_path / "empty.yaml"
    p.write_text("", encoding="utf-8")
    assert load_settings(p) == DEFAULTS


def test_no_path_is_defaults():
    assert load_settings() is DEFAULTS


def test_unknown_key_rejected(tmp_path):
    p = tmp_path / "bad.yaml"
    p.write_text("binarise_levle: 3\n", encoding="utf-8")
    with pytest.raises(ValueError, match="binarise_levle"):
        load_settings(p)


def test_non_mapping_root_rejected(tmp_path):
    p = tmp_path / "list.yaml"
    p.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config_any(p)


def test_overrides_leave_defaults_alone():
    s = apply_overrides(workers=8, max_hypotheses=None)
    assert s.workers == 8
    assert s.max_hypotheses == DEFAULTS.max_hypotheses
    assert DEFAULTS.workers == 1
