"""Read the score from the page text shown after a submission.

Patterns are tried in a fixed order: labelled formats first, the bare ``X/Y``
late because it also matches dates and pagination in the page chrome.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Match, Optional, Pattern

from models import ScoreSample

logger = logging.getLogger(__name__)


@dataclass
class ScorePattern:
    name: str
    regex: Pattern
    extract: Callable[[Match], ScoreSample]


def _fraction(m: Match) -> ScoreSample:
    return ScoreSample(correct=int(m.group(1)), total=int(m.group(2)))


def _count_only(m: Match) -> ScoreSample:
    # No denominator on the page: treat the count as the full mark
    score = int(m.group(1))
    return ScoreSample(correct=score, total=score, total_known=False)


def _percentage(m: Match) -> ScoreSample:
    return ScoreSample(correct=int(round(float(m.group(1)))), total=100)


def _p(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


SCORE_PATTERNS: List[ScorePattern] = [
    # 答对 7 / 共 10 题, 答对7题，共10题, 答对 3/10
    ScorePattern("answered_cn", _p(r"答对\s*(\d+)\s*题?\s*[，,]?\s*(?:[/／]\s*(?:共\s*)?|总?共\s*)(\d+)"), _fraction),
    # answered 7 of 10, answered 7 questions correctly out of 10
    ScorePattern("answered_en", _p(r"answered\s+(\d+)\s+(?:questions?\s+)?(?:correctly\s+)?(?:out\s+of|of)\s+(\d+)"), _fraction),
    ScorePattern("out_of", _p(r"(\d+)\s+out\s+of\s+(\d+)"), _fraction),
    ScorePattern("of_correct", _p(r"(\d+)\s+of\s+(\d+)\s+(?:correct|questions?|right)"), _fraction),
    # Score: 3/10, 得分：3/10
    ScorePattern("labelled_fraction", _p(r"(?:score|result|得分|分数|成绩)\s*[:：]?\s*(\d+)\s*[/／]\s*(\d+)"), _fraction),
    # 8/10题, 8/10 questions
    ScorePattern("unit_fraction", _p(r"(\d+)\s*[/／]\s*(\d+)\s*(?:题|分|questions?|points?|pts)"), _fraction),
    ScorePattern("bare_fraction", _p(r"(?<![\d/／])(\d+)\s*[/／]\s*(\d+)(?![\d/／])"), _fraction),
    # 得分: 5, Score: 5
    ScorePattern("score_only", _p(r"(?:得分|分数|score)\s*[:：]\s*(\d+)(?!\s*[%/／\d.])"), _count_only),
    # 正确: 5 题
    ScorePattern("correct_count", _p(r"(?:正确数|正确|答对|correct)\s*[:：]\s*(\d+)(?!\s*[%/／\d.])"), _count_only),
    # 正确率: 40%
    ScorePattern("percentage", _p(r"(?:正确率|准确率|accuracy|percentage|score)\s*[:：]?\s*(\d+(?:\.\d+)?)\s*[%％]"), _percentage),
]


def _plausible(sample: ScoreSample) -> bool:
    return sample.total > 0 and 0 <= sample.correct <= sample.total


def read_score(text: str, patterns: Optional[List[ScorePattern]] = None) -> Optional[ScoreSample]:
    """Return the first plausible score found in ``text``, or None if nothing matches."""
    if not text:
        return None

    for pattern in patterns or SCORE_PATTERNS:
        for m in pattern.regex.finditer(text):
            sample = pattern.extract(m)
            if _plausible(sample):
                logger.debug(f"Score {sample} via pattern '{pattern.name}'")
                return sample

    logger.info(f"No score pattern matched: {text[:120]!r}")
    return None
