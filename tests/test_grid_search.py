import pytest

from sheet_omr.scoring_defaults import DEFAULTS, apply_overrides
from sheet_omr.tools.grid_search import enumerate_hypotheses, evaluate_hypothesis, search_grid
from sheet_omr.tools.image_ops import encode_png, prepare_sheet

from conftest import blank_page, paint_option


def test_default_grid_has_32_hypotheses_in_fixed_order():
    hyps = enumerate_hypotheses(1200, 1600, 25)
    assert len(hyps) == 32
    assert [h.columns for h in hyps[:4]] == [4, 6, 4, 6]
    assert hyps[0].top == 224 and hyps[8].top == 288
    assert hyps[0].bottom < hyps[2].bottom
    assert all(h.left == 84 and h.right == 1116 for h in hyps)


def test_rows_cover_all_questions():
    for h in enumerate_hypotheses(1200, 1600, 25):
        assert h.rows * h.columns >= 25
        assert (h.rows - 1) * h.columns < 25


def test_hypothesis_cap():
    settings = apply_overrides(max_hypotheses=5)
    assert len(enumerate_hypotheses(1200, 1600, 25, settings)) == 5


def test_configurable_candidates():
    settings = apply_overrides(top_factors=[0.1, 0.2], height_factors=[0.3], column_counts=[5])
    hyps = enumerate_hypotheses(1000, 1000, 20, settings)
    assert [(h.top, h.columns, h.rows) for h in hyps] == [(100, 5, 4), (200, 5, 4)]


def test_ties_go_to_first_hypothesis(white_png):
    sheet = prepare_sheet(white_png)
    outcome = search_grid(sheet, 10)
    assert outcome.best.quality == 0.0
    assert outcome.best.hypothesis == enumerate_hypotheses(sheet.width, sheet.height, 10)[0]
    assert outcome.enumerated == 32
    assert not outcome.truncated


def test_quality_is_sum_of_rows(marked_b_png, pinned_settings):
    sheet = prepare_sheet(marked_b_png, pinned_settings)
    hyp = enumerate_hypotheses(sheet.width, sheet.height, 25, pinned_settings)[0]
    res = evaluate_hypothesis(sheet, hyp, 25, pinned_settings)
    assert len(res.questions) == 25
    assert res.quality == pytest.approx(sum(q.quality for q in res.questions))
    assert res.quality == pytest.approx(1.5)


def _busy_sheet():
    img = blank_page()
    for i, letter in enumerate("ABCDDCBA"):
        paint_option(img, DEFAULTS, total=20, index=i * 2, letter=letter)
    return prepare_sheet(encode_png(img))


def test_threaded_search_matches_sequential():
    sheet = _busy_sheet()
    seq = search_grid(sheet, 20)
    par = search_grid(sheet, 20, apply_overrides(workers=4))
    assert par.best.hypothesis == seq.best.hypothesis
    assert par.best.questions == seq.best.questions
    assert [r.hypothesis for r in par.ranking] == [r.hypothesis for r in seq.ranking]


def test_deadline_keeps_evaluated_prefix():
    sheet = _busy_sheet()
    outcome = search_grid(sheet, 20, apply_overrides(search_deadline_s=0.0))
    assert outcome.truncated
    assert len(outcome.ranking) >= 1
    assert outcome.best.hypothesis == enumerate_hypotheses(sheet.width, sheet.height, 20)[0]
