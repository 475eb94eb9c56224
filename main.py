"""Command line entry point for the exam engine."""

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

from answer_store import AnswerStore, JsonFileStore
from config import HEADLESS_MODE, MAX_LOOPS, SCREENSHOT_FILE, STORE_FILE
from exam_solver import ExamEngine
from models import ExamProgress
from page_driver import PlaywrightPageDriver

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_fields(pairs: List[str]) -> Dict[str, str]:
    """Turn ``["name=Alice", "phone=123"]`` into a dict."""
    fields = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected key=value, got '{pair}'")
        fields[key.strip()] = value.strip()
    return fields


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Learn and replay answers for form-style web exams")
    parser.add_argument("--store", default=STORE_FILE, help="JSON file holding learned exams")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Show the input fields and question count of a page")
    analyze.add_argument("url")
    analyze.add_argument("--headless", action="store_true", default=HEADLESS_MODE)

    run = sub.add_parser("run", help="Solve an exam, replaying cached answers when possible")
    run.add_argument("url")
    run.add_argument("--field", action="append", default=[], metavar="KEY=VALUE",
                     help="Personal info to fill in, e.g. --field name=Alice --field phone=123")
    run.add_argument("--max-loops", type=int, default=MAX_LOOPS)
    run.add_argument("--headless", action="store_true", default=HEADLESS_MODE)
    run.add_argument("--screenshot", default=SCREENSHOT_FILE, help="Where to save the result screenshot")

    sub.add_parser("clear-cache", help="Forget every learned exam")
    sub.add_parser("stats", help="Show cache statistics")
    return parser


def print_progress(progress: ExamProgress):
    parts = [f"[{progress.phase}]", progress.message]
    if progress.correct_count is not None and progress.total_questions is not None:
        parts.append(f"({progress.correct_count}/{progress.total_questions})")
    print(" ".join(parts))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    store = AnswerStore(JsonFileStore(args.store))

    if args.command == "clear-cache":
        removed = store.clear()
        print(f"Removed {removed} learned exams")
        return 0

    if args.command == "stats":
        print(json.dumps(store.stats(), indent=2))
        return 0

    try:
        fields = parse_fields(getattr(args, "field", []))
    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}")
        return 2

    logger.info("=" * 80)
    logger.info("📝 EXAM ENGINE")
    logger.info("=" * 80)

    with PlaywrightPageDriver(headless=args.headless) as driver:
        engine = ExamEngine(driver, store)

        if args.command == "analyze":
            analysis = engine.analyze_page(args.url)
            print(f"Questions: {analysis.question_count}")
            for f in analysis.fields:
                print(f"Field: {f.key} ({f.label})")
            return 0 if analysis.question_count else 1

        result = engine.auto_exam(args.url, fields, max_loops=args.max_loops,
                                  on_progress=print_progress)

    logger.info("=" * 80)
    if result.success:
        logger.info(f"✅ {result.message}")
    else:
        logger.info(f"⚠️ {result.message}")
    logger.info("=" * 80)

    if result.screenshot:
        with open(args.screenshot, "wb") as f:
            f.write(result.screenshot)
        logger.info(f"Screenshot saved to {args.screenshot}")

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
