from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from answer_store import AnswerStore, MemoryStore  # noqa: E402
from errors import DriverError  # noqa: E402
from exam_solver import ExamEngine  # noqa: E402


class FakeExamSite:
    """In-memory exam page implementing the driver protocol.

    Every ``open`` is a new page load with new refs, so a ref kept from an
    earlier load fails like it would in a real browser.
    """

    def __init__(self, questions: Sequence[dict], with_name_field: bool = True,
                 score_template: str = "答对 {correct} / 共 {total} 题"):
        self.questions = list(questions)
        self.with_name_field = with_name_field
        self.score_template = score_template
        self.unreadable_from: Optional[int] = None  # submission number that stops showing a score

        self.loads = 0
        self.submits = 0
        self.fills: List[tuple] = []
        self.clicks: List[str] = []
        self.screenshots = 0
        self.opened: List[str] = []
        self.submitted_selections: List[List[Set[int]]] = []

        self._refs: Dict[str, tuple] = {}
        self._lines: List[str] = []
        self._selected: List[Set[int]] = []
        self._page_text = ""

    # driver protocol
    def open(self, url: str) -> None:
        self.loads += 1
        self.opened.append(url)
        self._refs = {}
        self._selected = [set() for _ in self.questions]
        self._page_text = "在线考试 第 1 页"
        prefix = f"l{self.loads}e"
        counter = 0

        def ref(target):
            nonlocal counter
            counter += 1
            r = f"{prefix}{counter}"
            self._refs[r] = target
            return r

        lines = [f'- heading "在线考试" [level=1] [ref={ref(("title",))}]']
        if self.with_name_field:
            lines.append('- text "姓名"')
            lines.append(f'- textbox "请输入姓名" [ref={ref(("field", "name"))}]')
        for q_idx, q in enumerate(self.questions):
            lines.append(f'- heading "{q["text"]}" [level=3] [ref={ref(("question", q_idx))}]:')
            role = "checkbox" if q.get("multi") else "radio"
            for o_idx, opt in enumerate(q["options"]):
                lines.append(f'  - {role} "{opt}" [ref={ref(("option", q_idx, o_idx))}]')
        lines.append(f'- button "提交" [ref={ref(("submit",))}]')
        self._lines = lines

    def snapshot(self) -> str:
        return "\n".join(self._lines)

    def click(self, ref: str) -> None:
        target = self._refs.get(ref)
        if target is None:
            raise DriverError(f"click {ref} failed: no such element")
        self.clicks.append(ref)
        if target[0] == "option":
            _, q_idx, o_idx = target
            if self.questions[q_idx].get("multi"):
                self._selected[q_idx] ^= {o_idx}
            else:
                self._selected[q_idx] = {o_idx}
        elif target[0] == "submit":
            self._submit()

    def fill(self, ref: str, value: str) -> None:
        target = self._refs.get(ref)
        if target is None or target[0] != "field":
            raise DriverError(f"fill {ref} failed: not an input")
        self.fills.append((target[1], value))

    def read_page_text(self) -> str:
        return self._page_text

    def screenshot(self) -> bytes:
        self.screenshots += 1
        return b"\x89PNG fake"

    # scoring
    def _submit(self):
        self.submits += 1
        self.submitted_selections.append([set(s) for s in self._selected])
        if self.unreadable_from is not None and self.submits >= self.unreadable_from:
            self._page_text = "请完成验证"
            return
        correct = sum(
            1 for q, chosen in zip(self.questions, self._selected)
            if chosen == set(q["correct"])
        )
        self._page_text = "提交成功！\n" + self.score_template.format(
            correct=correct, total=len(self.questions))


def make_question(text: str, options: Sequence[str], correct: Sequence[int], multi: bool = False) -> dict:
    return {"text": text, "options": list(options), "correct": list(correct), "multi": multi}


@pytest.fixture
def two_question_site():
    """Two questions with three options each; answers are option 1 and option 2."""
    return FakeExamSite([
        make_question("1. Which planet is the largest?", ["Mars", "Jupiter", "Venus"], [1]),
        make_question("2. Which gas do plants absorb?", ["Oxygen", "Helium", "Carbon dioxide"], [2]),
    ])


@pytest.fixture
def memory_store():
    return AnswerStore(MemoryStore())


@pytest.fixture
def make_engine(memory_store):
    def _make(site, store=None):
        return ExamEngine(site, store or memory_store, sleep=lambda s: None, jitter=lambda: 0.0)
    return _make


EXAM_URL = "https://exam.example.com/quiz/42"
