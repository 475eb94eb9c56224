"""Exam solver - learns answers from score feedback alone and replays them later.

Only the global score is visible after a submission, so answers are found by
trial: start from option 0 everywhere, change ONE question at a time and keep
the first option that raises the score.
"""

import logging
import random
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from answer_store import AnswerStore, url_fingerprint
from config import (
    CLICK_DELAY,
    MAX_LOOPS,
    PAGE_LOAD_DELAY,
    ROUND_COOLDOWN,
    SUBMIT_DELAY,
    TRIAL_JITTER,
)
from errors import (
    Cancelled,
    DriverError,
    ExamError,
    NoQuestionsFound,
    StaleCache,
    StructureChanged,
    UnreadableScore,
)
from models import (
    ExamProgress,
    ExamResult,
    LearnedExam,
    LearnedQuestion,
    PageAnalysis,
    Question,
    ScoreSample,
    TrialRecord,
)
from page_driver import PageDriver
from score_reader import read_score
from snapshot_parser import ParsedPage, parse_page

logger = logging.getLogger(__name__)

AnswerVector = List[List[int]]
ProgressCallback = Callable[[ExamProgress], None]


class ExamSubmitter:
    """One exam session on the driver: load the page, fill it in, submit, read the score."""

    def __init__(self, driver: PageDriver, sleep: Callable[[float], None] = time.sleep,
                 on_progress: Optional[ProgressCallback] = None,
                 cancel: Optional[threading.Event] = None):
        self.driver = driver
        self.sleep = sleep
        self.on_progress = on_progress
        self.cancel = cancel
        self.submissions = 0

    def report(self, phase: str, message: str, **extra):
        logger.info(f"[{phase}] {message}")
        if self.on_progress is None:
            return
        try:
            self.on_progress(ExamProgress(phase=phase, message=message, **extra))
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def check_cancel(self):
        if self.cancel is not None and self.cancel.is_set():
            raise Cancelled("Exam session cancelled")

    def load(self, url: str) -> ParsedPage:
        """Open ``url`` and parse a fresh snapshot. Refs from earlier loads are dead after this."""
        self.check_cancel()
        self.driver.open(url)
        self.sleep(PAGE_LOAD_DELAY)
        page = parse_page(self.driver.snapshot())
        logger.debug(f"Loaded {url}: {len(page.questions)} questions, "
                     f"{len(page.fields)} fields, submit={page.submit_ref}")
        return page

    def fill_fields(self, page: ParsedPage, user_inputs: Dict[str, str]):
        for f in page.fields:
            value = user_inputs.get(f.key)
            if not value or not f.ref:
                continue
            self.driver.fill(f.ref, value)
            self.sleep(CLICK_DELAY)

    def click_answers(self, questions: List[Question], vector: AnswerVector):
        for question, indices in zip(questions, vector):
            for idx in indices:
                self.driver.click(question.options[idx].ref)
                self.sleep(CLICK_DELAY)

    def submit_and_check(self, page: ParsedPage) -> Optional[ScoreSample]:
        if page.submit_ref is None:
            raise DriverError("No submit button found")
        self.check_cancel()
        self.report("submitting", "Submitting answers...")
        self.driver.click(page.submit_ref)
        self.submissions += 1
        self.sleep(SUBMIT_DELAY)
        return read_score(self.driver.read_page_text())

    def attempt(self, url: str, user_inputs: Dict[str, str], vector: AnswerVector,
                expected_count: int) -> Optional[ScoreSample]:
        """Full cycle on a fresh page load; None when the score cannot be read."""
        page = self.load(url)
        if len(page.questions) != expected_count:
            raise StructureChanged(expected_count, len(page.questions))
        self.fill_fields(page, user_inputs)
        self.click_answers(page.questions, vector)
        return self.submit_and_check(page)


class TrialLearner:
    """
    Greedy learner for exams with only global score feedback.
    Every question keeps a provisional answer so each submission is complete;
    a trial changes one question and is kept only if the score goes UP.
    """

    def __init__(self, submitter: ExamSubmitter, jitter: Callable[[], float] = random.random):
        self.submitter = submitter
        self.jitter = jitter
        self.history: List[TrialRecord] = []
        self.last_score: Optional[int] = None
        self.total: Optional[int] = None

    def _seed_state(self, questions: List[Question],
                    seed: Optional[LearnedExam]) -> Tuple[AnswerVector, List[bool]]:
        vector = [[0] for _ in questions]
        resolved = [False] * len(questions)
        if seed is None:
            return vector, resolved
        if len(seed.questions) != len(questions):
            logger.info(f"Previous answers cover {len(seed.questions)} questions, page has "
                        f"{len(questions)}; starting from scratch")
            return vector, resolved

        for i, (learned, question) in enumerate(zip(seed.questions, questions)):
            indices = [idx for idx in learned.correct_option_indices if 0 <= idx < len(question.options)]
            if indices:
                vector[i] = indices
                resolved[i] = learned.resolved
        logger.info(f"[SEED] Resuming with {sum(resolved)}/{len(questions)} questions already resolved")
        return vector, resolved

    def learn(self, url: str, user_inputs: Optional[Dict[str, str]] = None,
              seed: Optional[LearnedExam] = None, loop: int = 1) -> Tuple[LearnedExam, ScoreSample]:
        """Run one learning pass. Raises UnreadableScore if the baseline or final score is missing."""
        user_inputs = user_inputs or {}
        sub = self.submitter
        self.history = []

        page = sub.load(url)
        questions = page.questions
        if not questions:
            raise NoQuestionsFound(f"No questions found on {url}")
        total_questions = len(questions)
        vector, resolved = self._seed_state(questions, seed)

        # Baseline
        sub.report("learning", "Getting baseline score...", total_questions=total_questions,
                   loop_count=loop)
        sub.fill_fields(page, user_inputs)
        sub.click_answers(questions, vector)
        baseline = sub.submit_and_check(page)
        if baseline is None:
            raise UnreadableScore("Cannot read baseline score, the page may show a verification challenge")

        self.last_score = baseline.correct
        self.total = baseline.target(total_questions)
        logger.info(f"[BASELINE] Baseline score: {baseline}")

        for q_idx in range(total_questions):
            if self.total > 0 and self.last_score >= self.total:
                logger.info("[DONE] Full marks reached, skipping remaining questions")
                break
            if resolved[q_idx]:
                continue
            self._learn_question(url, user_inputs, questions, vector, resolved, q_idx, loop)

        # Confirm with everything learned
        sub.report("learning", "Final check with the learned answers...",
                   total_questions=total_questions, correct_count=self.last_score, loop_count=loop)
        final = sub.attempt(url, user_inputs, vector, total_questions)
        if final is None:
            raise UnreadableScore("Cannot read the confirming score")
        if final.correct < self.last_score:
            logger.warning(f"⚠️ Confirming score {final} is below the learned {self.last_score}, page may be flaky")

        now = time.time()
        exam = LearnedExam(
            url=url,
            url_fingerprint=url_fingerprint(url),
            perfect=final.full_marks(total_questions),
            questions=[
                LearnedQuestion(text=q.text, correct_option_indices=list(v), type=q.type, resolved=r)
                for q, v, r in zip(questions, vector, resolved)
            ],
            learned_at=seed.learned_at if seed is not None else now,
            updated_at=now,
            final_score=final,
        )
        logger.info(f"Learning pass done. Final score: {final}, perfect: {exam.perfect}")
        return exam, final

    def _learn_question(self, url: str, user_inputs: Dict[str, str], questions: List[Question],
                        vector: AnswerVector, resolved: List[bool], q_idx: int, loop: int):
        sub = self.submitter
        question = questions[q_idx]
        logger.info(f"[TESTING] Question {q_idx + 1}/{len(questions)}: {question.text[:50]}...")

        for opt_idx in range(1, len(question.options)):
            if opt_idx in vector[q_idx]:
                continue
            sub.check_cancel()
            sub.report("learning", f"Testing question {q_idx + 1} option {opt_idx + 1}...",
                       question_index=q_idx + 1, total_questions=len(questions),
                       correct_count=self.last_score, loop_count=loop)
            self.submitter.sleep(self.jitter() * TRIAL_JITTER)

            trial = [list(v) for v in vector]
            trial[q_idx] = [opt_idx]
            sample = sub.attempt(url, user_inputs, trial, len(questions))

            if sample is None:
                logger.warning(f"⚠️ Q{q_idx + 1}: score unreadable, leaving option "
                               f"{vector[q_idx]} for this question")
                self.history.append(TrialRecord(q_idx, opt_idx, None, False))
                return

            self.total = sample.target(len(questions))
            if sample.correct > self.last_score:
                logger.info(f"✅ Q{q_idx + 1}: option {opt_idx + 1} is CORRECT! "
                            f"(score {self.last_score} -> {sample.correct})")
                vector[q_idx] = [opt_idx]
                resolved[q_idx] = True
                self.last_score = sample.correct
                self.history.append(TrialRecord(q_idx, opt_idx, sample.correct, True))
                return

            if sample.correct < self.last_score:
                # Changing away from the current answer lost a point: it was right
                logger.info(f"❌ Q{q_idx + 1}: option {opt_idx + 1} lowered the score, "
                            f"current answer {vector[q_idx]} confirmed")
                resolved[q_idx] = True
                self.history.append(TrialRecord(q_idx, opt_idx, sample.correct, False))
                return

            logger.info(f"➖ Q{q_idx + 1}: option {opt_idx + 1} gave same score ({sample.correct})")
            self.history.append(TrialRecord(q_idx, opt_idx, sample.correct, False))


class ReplayController:
    """Apply a perfect cached answer set to a fresh page load with a single submission."""

    def __init__(self, submitter: ExamSubmitter):
        self.submitter = submitter

    def replay(self, url: str, exam: LearnedExam,
               user_inputs: Optional[Dict[str, str]] = None) -> ScoreSample:
        sub = self.submitter
        total_questions = len(exam.questions)
        sub.report("filling", f"Using learned answers, {total_questions} questions...",
                   total_questions=total_questions)

        page = sub.load(url)
        if len(page.questions) != total_questions:
            sub.report("analyzing", "Question structure changed, relearning needed")
            raise StaleCache(total_questions, len(page.questions))

        vector = exam.answer_vector()
        for i, (question, indices) in enumerate(zip(page.questions, vector)):
            if not indices or any(idx >= len(question.options) for idx in indices):
                raise StaleCache(total_questions, len(page.questions),
                                 f"question {i + 1} has only {len(question.options)} options")

        sub.fill_fields(page, user_inputs or {})
        for i, (question, indices) in enumerate(zip(page.questions, vector)):
            sub.report("filling", f"Filling question {i + 1}/{total_questions}...",
                       question_index=i + 1, total_questions=total_questions)
            sub.click_answers([question], [indices])

        score = sub.submit_and_check(page)
        if score is None:
            raise UnreadableScore("Cannot read the score after replaying cached answers")

        sub.report("submitting", f"Done! Score: {score}", correct_count=score.correct,
                   total_questions=score.total)
        return score


class ExamEngine:
    """Top level: cached replay when possible, otherwise learning rounds until perfect."""

    def __init__(self, driver: PageDriver, store: AnswerStore,
                 sleep: Callable[[float], None] = time.sleep,
                 jitter: Callable[[], float] = random.random):
        self.driver = driver
        self.store = store
        self.sleep = sleep
        self.jitter = jitter
        self._lock = threading.Lock()

    def _submitter(self, on_progress=None, cancel=None) -> ExamSubmitter:
        return ExamSubmitter(self.driver, sleep=self.sleep, on_progress=on_progress, cancel=cancel)

    def analyze_page(self, url: str) -> PageAnalysis:
        """Open the page and report its personal-info fields and question count."""
        with self._lock:
            try:
                page = self._submitter().load(url)
            except ExamError as e:
                logger.error(f"Analyze page failed: {e}")
                return PageAnalysis(url=url, fields=[], question_count=0)

        logger.info(f"Analysis: fields={[f.label for f in page.fields]}, "
                    f"questions={len(page.questions)}")
        return PageAnalysis(url=url, fields=page.fields, question_count=len(page.questions))

    def auto_exam(self, url: str, user_inputs: Optional[Dict[str, str]] = None,
                  max_loops: int = MAX_LOOPS, on_progress: Optional[ProgressCallback] = None,
                  cancel: Optional[threading.Event] = None) -> ExamResult:
        """Solve the exam at ``url``. Never raises: every outcome is an ExamResult."""
        submitter = self._submitter(on_progress, cancel)
        with self._lock:
            try:
                return self._run(url, user_inputs or {}, max(1, max_loops), submitter)
            except Cancelled as e:
                logger.warning(f"⚠️ {e}")
                return ExamResult(success=False, message=str(e))
            except ExamError as e:
                logger.error(f"❌ Exam failed: {e}")
                return ExamResult(success=False, message=f"Exam failed: {e}")
            except Exception as e:
                logger.error(f"❌ Unexpected error: {e}", exc_info=True)
                return ExamResult(success=False, message=f"Unexpected error: {e}")

    def _run(self, url: str, user_inputs: Dict[str, str], max_loops: int,
             submitter: ExamSubmitter) -> ExamResult:
        submitter.report("analyzing", "Checking learned answers...")
        cached = self.store.get(url_fingerprint(url))
        seed = None

        if cached is not None and cached.perfect:
            logger.info("Using learned perfect answers")
            try:
                score = ReplayController(submitter).replay(url, cached, user_inputs)
            except StaleCache as e:
                logger.info(f"Cached answers are stale ({e}), relearning")
            except UnreadableScore as e:
                logger.warning(f"⚠️ Replay score unreadable ({e}), relearning")
            else:
                if score.full_marks(len(cached.questions)):
                    return ExamResult(success=True, final_score=score, learned_exam=cached,
                                      screenshot=self._screenshot(),
                                      message=f"Replayed cached answers: {score}")
                logger.warning(f"⚠️ Replay scored only {score}, relearning")
        elif cached is not None:
            seed = cached

        learner = TrialLearner(submitter, jitter=self.jitter)
        last_exam = None
        last_score = None

        for loop in range(1, max_loops + 1):
            logger.info("=" * 80)
            logger.info(f"LEARNING ROUND {loop}/{max_loops}")
            logger.info("=" * 80)
            submitter.report("learning", f"Learning round {loop}/{max_loops}...", loop_count=loop)

            try:
                exam, score = learner.learn(url, user_inputs, seed=seed, loop=loop)
            except (DriverError, UnreadableScore, StructureChanged, NoQuestionsFound) as e:
                logger.warning(f"⚠️ Round {loop} aborted: {e}")
            else:
                self.store.put(exam)
                last_exam, last_score, seed = exam, score, exam
                if exam.perfect:
                    logger.info("🎉 PERFECT SCORE ACHIEVED!")
                    return ExamResult(success=True, final_score=score, learned_exam=exam,
                                      screenshot=self._screenshot(), loops=loop,
                                      message=f"Learned all answers in {loop} round(s): {score}")

            if loop < max_loops:
                submitter.check_cancel()
                self.sleep(ROUND_COOLDOWN)

        return ExamResult(
            success=False, final_score=last_score, learned_exam=last_exam, loops=max_loops,
            message=f"No perfect score after {max_loops} rounds, needs manual review",
        )

    def _screenshot(self) -> Optional[bytes]:
        try:
            return self.driver.screenshot()
        except DriverError as e:
            logger.warning(f"Screenshot failed: {e}")
            return None

    def clear_cache(self) -> int:
        return self.store.clear()

    def cache_stats(self) -> Dict:
        return self.store.stats()
