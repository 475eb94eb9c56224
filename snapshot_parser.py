"""Parse page snapshots into questions, personal-info fields and the submit button.

A snapshot is the indented text dump of the interactive elements of a page::

    - heading "1. Which planet is largest?" [ref=e4]
      - radio "Mars" [ref=e5]
      - radio "Jupiter" [ref=e6]
    - textbox "姓名" [ref=e9]
    - button "提交" [ref=e12]

Indentation gives the nesting. Lines we do not understand are skipped, so a
garbled snapshot degrades to fewer questions instead of an exception.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from config import (
    FIELD_DEFINITIONS,
    INFO_LABEL_PATTERNS,
    QUESTION_MIN_LENGTH,
    SKIP_WORDS,
    SUBMIT_PATTERN,
)
from models import MULTIPLE, SINGLE, DetectedField, Option, Question

logger = logging.getLogger(__name__)

ROLES = {
    "heading", "text", "button", "textbox", "combobox", "checkbox",
    "radiogroup", "radio", "link", "group", "list", "listitem", "form",
}
ROLE_ALIASES = {"paragraph": "text", "label": "text", "statictext": "text"}
CHOICE_ROLES = {"radio", "checkbox"}
INPUT_ROLES = {"textbox", "combobox"}

_ROLE_RE = re.compile(r"^-?\s*([A-Za-z]+)\b")
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_ATTR_RE = re.compile(r"\[([^\]=\s]+)(?:=([^\]]*))?\]")
_SUBMIT_RE = re.compile(SUBMIT_PATTERN, re.IGNORECASE)
_INFO_RES = [re.compile(p, re.IGNORECASE) for p in INFO_LABEL_PATTERNS]


@dataclass
class SnapshotNode:
    role: str
    text: str = ""
    ref: Optional[str] = None
    attrs: Dict[str, str] = field(default_factory=dict)
    children: List["SnapshotNode"] = field(default_factory=list)


@dataclass
class ParsedPage:
    questions: List[Question]
    fields: List[DetectedField]
    submit_ref: Optional[str]


def _contains_word(text: str, word: str) -> bool:
    """Whole-word match for latin words, substring match for CJK."""
    if word.isascii():
        return re.search(r"\b" + re.escape(word) + r"\b", text, re.IGNORECASE) is not None
    return word in text


def parse_line(line: str) -> Optional[Tuple[int, SnapshotNode]]:
    """Parse one snapshot line into ``(indent, node)``, or None if it is not a node."""
    line = line.expandtabs(2).rstrip()
    content = line.lstrip(" ")
    if not content:
        return None
    indent = len(line) - len(content)

    m = _ROLE_RE.match(content)
    if not m:
        return None
    role = m.group(1).lower()
    role = ROLE_ALIASES.get(role, role)
    if role not in ROLES:
        return None
    rest = content[m.end():]

    quoted = _QUOTED_RE.search(rest)
    if rest.lstrip().startswith(":"):
        # "- text: Some words" form
        tail = rest.lstrip()[1:]
        text = _ATTR_RE.sub("", tail)
    elif quoted:
        text = quoted.group(1).replace('\\"', '"')
        tail = rest[quoted.end():]
    else:
        text = ""
        tail = rest

    attrs = {name.lower(): (value or "").strip('"') for name, value in _ATTR_RE.findall(tail)}

    return indent, SnapshotNode(
        role=role,
        text=" ".join(text.split()),
        ref=attrs.pop("ref", None) or None,
        attrs=attrs,
    )


def parse_snapshot_tree(snapshot: str) -> List[SnapshotNode]:
    """Build the node tree; a node is the child of the nearest shallower node above it."""
    roots: List[SnapshotNode] = []
    stack: List[Tuple[int, SnapshotNode]] = []

    for line in (snapshot or "").splitlines():
        parsed = parse_line(line)
        if parsed is None:
            continue
        indent, node = parsed

        while stack and stack[-1][0] >= indent:
            stack.pop()
        if stack:
            stack[-1][1].children.append(node)
        else:
            roots.append(node)
        stack.append((indent, node))

    return roots


def walk(nodes: List[SnapshotNode]) -> Iterator[SnapshotNode]:
    """All nodes in document order."""
    for node in nodes:
        yield node
        yield from walk(node.children)


def _subtree_text(node: SnapshotNode) -> str:
    return " ".join(n.text for n in walk(node.children) if n.text)


def is_info_label(text: str) -> bool:
    return bool(text) and any(p.search(text) for p in _INFO_RES)


def is_question_head(node: SnapshotNode) -> bool:
    if not node.text or is_info_label(node.text):
        return False
    if node.role == "heading":
        return True
    if node.role == "text" and len(node.text) > QUESTION_MIN_LENGTH:
        return not any(_contains_word(node.text, w) for w in SKIP_WORDS)
    return False


class _QuestionCollector:
    """Assigns choice controls to the most recent question head in document order."""

    def __init__(self):
        self.questions: List[Question] = []
        self.head: Optional[SnapshotNode] = None
        self.options: List[Option] = []

    def open(self, head: Optional[SnapshotNode]):
        self.close()
        self.head = head

    def close(self):
        if self.head is not None and self.options:
            multi = any(opt.multi for opt in self.options)
            self.questions.append(Question(
                id=self.head.ref or f"q_{len(self.questions)}",
                text=self.head.text,
                options=self.options,
                type=MULTIPLE if multi else SINGLE,
            ))
        self.head = None
        self.options = []

    def add_option(self, node: SnapshotNode):
        if self.head is None or not node.ref:
            return
        index = len(self.options)
        self.options.append(Option(
            text=node.text or _subtree_text(node) or f"Option {index + 1}",
            ref=node.ref,
            index=index,
            multi=node.role == "checkbox",
        ))

    def visit(self, nodes: List[SnapshotNode], in_choice: bool = False):
        for node in nodes:
            if node.role in CHOICE_ROLES:
                self.add_option(node)
                self.visit(node.children, in_choice=True)
                continue

            if not in_choice:
                if node.role in ("heading", "text") and is_info_label(node.text):
                    self.open(None)
                elif is_question_head(node):
                    self.open(node)
                elif (node.role == "radiogroup" and node.text and not is_info_label(node.text)
                      and (self.head is None or self.options)):
                    self.open(node)

            self.visit(node.children, in_choice)


def extract_questions(snapshot: str) -> List[Question]:
    collector = _QuestionCollector()
    collector.visit(parse_snapshot_tree(snapshot))
    collector.close()
    return collector.questions


def _match_field(text: str) -> Optional[Tuple[str, str]]:
    if not text:
        return None
    for key, keywords, label in FIELD_DEFINITIONS:
        if any(_contains_word(text, kw) for kw in keywords):
            return key, label
    return None


def detect_fields(snapshot: str) -> List[DetectedField]:
    """Find the personal-information inputs, labelled by their own name or the text before them."""
    fields: List[DetectedField] = []
    seen = set()
    last_label = ""

    for node in walk(parse_snapshot_tree(snapshot)):
        if node.role in ("text", "heading") and node.text:
            last_label = node.text
            continue
        if node.role not in INPUT_ROLES or not node.ref:
            continue

        match = _match_field(node.text) or _match_field(last_label)
        last_label = ""
        if match is None or match[0] in seen:
            continue
        key, label = match
        seen.add(key)
        source = node.text or label
        fields.append(DetectedField(
            key=key,
            label=label,
            ref=node.ref,
            required="*" in source or "required" in node.attrs,
        ))
        logger.debug(f"Detected field {key} ({label}) -> {node.ref}")

    return fields


def find_submit_ref(snapshot: str) -> Optional[str]:
    for node in walk(parse_snapshot_tree(snapshot)):
        if node.role == "button" and node.ref and node.text and _SUBMIT_RE.search(node.text):
            return node.ref
    return None


def parse_page(snapshot: str) -> ParsedPage:
    return ParsedPage(
        questions=extract_questions(snapshot),
        fields=detect_fields(snapshot),
        submit_ref=find_submit_ref(snapshot),
    )
