"""Configuration file for the exam engine."""

import os

# Learning loop
MAX_LOOPS = 10  # Learning passes before giving up
QUESTION_MIN_LENGTH = 6  # Plain text longer than this may be a question

# Grace delays (seconds)
PAGE_LOAD_DELAY = 3.0  # After navigation
SUBMIT_DELAY = 2.0  # After clicking submit, before reading the score
CLICK_DELAY = 0.2  # Between option clicks
TRIAL_JITTER = 1.0  # Random extra wait between trials
ROUND_COOLDOWN = 3.0  # Between learning passes

# Output files
STORE_FILE = os.environ.get("EXAM_STORE_FILE", "learned_exams.json")
SCREENSHOT_FILE = "exam_result.png"

# Browser settings
HEADLESS_MODE = os.environ.get("EXAM_HEADLESS", "0") == "1"
TIMEOUT = 30000  # Milliseconds

# Store keys
LEARNED_KEY_PREFIX = "exam_learned_"
STATS_KEY = "exam_stats"

# Words that mark UI chrome rather than a question
SKIP_WORDS = [
    "提交", "确定", "下一步", "说明", "注意", "提示", "请",
    "submit", "next", "note", "notice", "confirm", "instruction",
]

# Personal information inputs: (key, keywords, display label)
FIELD_DEFINITIONS = [
    ("name", ["姓名", "name"], "姓名"),
    ("phone", ["手机", "电话", "phone", "mobile", "tel"], "手机号"),
    ("dept", ["部门", "单位", "dept", "department"], "部门"),
    ("company", ["公司", "company"], "公司"),
    ("email", ["邮箱", "email", "mail"], "邮箱"),
    ("address", ["地址", "address"], "地址"),
    ("idcard", ["身份证", "id card", "id number"], "身份证号"),
    ("age", ["年龄", "age"], "年龄"),
    ("gender", ["性别", "gender"], "性别"),
]

# Text that labels a personal information input, never a question head
INFO_LABEL_PATTERNS = [
    r"姓名", r"手机", r"电话", r"部门", r"单位", r"邮箱", r"身份证",
    r"^\s*(your\s+)?(full\s+)?(name|phone|mobile|e-?mail|department|company)\b",
]

SUBMIT_PATTERN =r"提交|submit|确定|交卷|下一[页步题]?|next|finish"
