"""Tests for reading scores from post-submission page text."""

import re

import pytest

from models import ScoreSample
from score_reader import SCORE_PATTERNS, ScorePattern, read_score


@pytest.mark.parametrize("text, expected", [
    ("答对 7 / 共 10 题", ScoreSample(7, 10)),
    ("8/10题", ScoreSample(8, 10)),
    ("得分: 5", ScoreSample(5, 5)),
    ("正确率: 40%", ScoreSample(40, 100)),
    ("no score info here", None),
])
def test_score_table(text, expected):
    assert read_score(text) == expected


def test_answered_of_variants():
    assert read_score("答对7题，共10题") == ScoreSample(7, 10)
    assert read_score("答对 3/10") == ScoreSample(3, 10)
    assert read_score("You answered 4 of 5 questions") == ScoreSample(4, 5)
    assert read_score("You got 6 out of 9") == ScoreSample(6, 9)


def test_labelled_fraction_wins_over_page_chrome():
    text = "Page 1/3\nYour score: 2/10"
    assert read_score(text) == ScoreSample(2, 10)


def test_dates_are_not_read_as_fractions():
    text = "提交时间 2024/10/18\n得分：6"
    assert read_score(text) == ScoreSample(6, 6)


def test_implausible_fraction_is_skipped():
    # 12/5 cannot be a score, 3/5 can
    assert read_score("12/5 then 3/5") == ScoreSample(3, 5)


def test_percentage_is_not_mistaken_for_a_count():
    assert read_score("Score: 80%") == ScoreSample(80, 100)


def test_empty_text():
    assert read_score("") is None
    assert read_score(None) is None


def test_custom_pattern_table():
    patterns = [ScorePattern("points", re.compile(r"(\d+) pts of (\d+)"),
                             lambda m: ScoreSample(int(m.group(1)), int(m.group(2))))]
    assert read_score("You earned 9 pts of 12", patterns) == ScoreSample(9, 12)
    assert read_score("答对 7 / 共 10 题", patterns) is None


def test_specific_patterns_come_before_bare_fraction():
    names = [p.name for p in SCORE_PATTERNS]
    assert names.index("answered_cn") < names.index("bare_fraction")
    assert names.index("labelled_fraction") < names.index("bare_fraction")
    assert names.index("bare_fraction") < names.index("percentage")


@pytest.mark.parametrize("text", ["得分: 0", "Score: 0/0", "0/0题"])
def test_zero_total_is_not_a_score(text):
    assert read_score(text) is None


def test_count_only_score_has_no_known_total():
    sample = read_score("得分: 1")
    assert sample == ScoreSample(1, 1)
    assert sample.total_known is False
    # Two questions on the page: one right is not full marks
    assert sample.full_marks(2) is False
    assert read_score("得分: 2").full_marks(2) is True
    assert read_score("答对 2 / 共 2 题").full_marks(5) is True
