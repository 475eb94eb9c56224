"""Data structures shared by the parser, the solver and the answer store."""

import time
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

SINGLE = "single"
MULTIPLE = "multiple"


@dataclass
class Option:
    """One choice control. ``ref`` is only valid for the page load it came from."""
    text: str
    ref: str
    index: int
    multi: bool = False  # came from a checkbox


@dataclass
class Question:
    id: str
    text: str
    options: List[Option]
    type: str = SINGLE  # single or multiple


@dataclass
class DetectedField:
    key: str  # name, phone, dept...
    label: str  # display label or the label found on the page
    ref: Optional[str] = None
    required: bool = False


@dataclass
class ScoreSample:
    correct: int
    total: int
    total_known: bool = field(default=True, compare=False)  # False when the page shows only a count

    @property
    def perfect(self) -> bool:
        return self.total > 0 and self.correct == self.total

    def target(self, question_count: int) -> int:
        """Score meaning full marks; without a total on the page the question count stands in."""
        if self.total_known:
            return self.total
        return max(self.total, question_count)

    def full_marks(self, question_count: int) -> bool:
        return self.total > 0 and self.correct >= self.target(question_count)

    def __str__(self) -> str:
        return f"{self.correct}/{self.total}"


@dataclass
class LearnedQuestion:
    text: str
    correct_option_indices: List[int]
    type: str = SINGLE
    resolved: bool = False


@dataclass
class LearnedExam:
    url: str
    url_fingerprint: str
    perfect: bool
    questions: List[LearnedQuestion]
    learned_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    final_score: Optional[ScoreSample] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "LearnedExam":
        score = data.get("final_score")
        return cls(
            url=data["url"],
            url_fingerprint=data["url_fingerprint"],
            perfect=bool(data.get("perfect", False)),
            questions=[
                LearnedQuestion(
                    text=q.get("text", ""),
                    correct_option_indices=list(q.get("correct_option_indices") or [0]),
                    type=q.get("type", SINGLE),
                    resolved=bool(q.get("resolved", False)),
                )
                for q in data.get("questions", [])
            ],
            learned_at=data.get("learned_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
            final_score=ScoreSample(**score) if score else None,
        )

    def answer_vector(self) -> List[List[int]]:
        return [list(q.correct_option_indices) for q in self.questions]


@dataclass
class PageAnalysis:
    url: str
    fields: List[DetectedField]
    question_count: int


@dataclass
class ExamProgress:
    phase: str  # analyzing, learning, filling, submitting
    message: str
    question_index: Optional[int] = None
    total_questions: Optional[int] = None
    correct_count: Optional[int] = None
    loop_count: Optional[int] = None


@dataclass
class TrialRecord:
    question_index: int
    option_index: int
    score: Optional[int]
    committed: bool


@dataclass
class ExamResult:
    success: bool
    final_score: Optional[ScoreSample] = None
    learned_exam: Optional[LearnedExam] = None
    screenshot: Optional[bytes] = None
    message: str = ""
    loops: int = 0
