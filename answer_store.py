"""Cache of learned exams, keyed by a fingerprint of the exam URL."""

import fnmatch
import hashlib
import json
import logging
import os
import threading
import time
from datetime import datetime
from typing import Dict, Optional, Protocol
from urllib.parse import urldefrag

from config import LEARNED_KEY_PREFIX, STATS_KEY
from models import LearnedExam

logger = logging.getLogger(__name__)


def url_fingerprint(url: str) -> str:
    """Stable cache id for an exam URL; the fragment does not take part."""
    clean_url, _ = urldefrag(url.strip())
    return hashlib.sha256(clean_url.encode("utf-8")).hexdigest()[:32]


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def put(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> int:
        """Delete ``key``, or every key matching it when it is a glob pattern."""
        ...


def _matching(keys, key_or_pattern: str):
    if any(ch in key_or_pattern for ch in "*?["):
        return [k for k in keys if fnmatch.fnmatchcase(k, key_or_pattern)]
    return [k for k in keys if k == key_or_pattern]


class MemoryStore:
    """Dict-backed store, for tests and throwaway sessions."""

    def __init__(self):
        self.data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    def put(self, key: str, value: bytes) -> None:
        self.data[key] = bytes(value)

    def delete(self, key: str) -> int:
        doomed = _matching(list(self.data), key)
        for k in doomed:
            del self.data[k]
        return len(doomed)


class JsonFileStore:
    """All entries in one UTF-8 JSON document, rewritten on every change."""

    def __init__(self, json_file: str):
        self.json_file = json_file
        self._lock = threading.Lock()
        self._data = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.json_file):
            return {}
        try:
            with open(self.json_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading store {self.json_file}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Store {self.json_file} is not a JSON object, starting empty")
            return {}
        return data

    def _save(self):
        tmp_file = f"{self.json_file}.tmp"
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_file, self.json_file)

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            value = self._data.get(key)
        return value.encode("utf-8") if value is not None else None

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = value.decode("utf-8")
            self._save()

    def delete(self, key: str) -> int:
        with self._lock:
            doomed = _matching(list(self._data), key)
            for k in doomed:
                del self._data[k]
            if doomed:
                self._save()
        return len(doomed)


class AnswerStore:
    """Learned exams on top of a key/value store, plus a counter of cached exams."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    @staticmethod
    def _key(fingerprint: str) -> str:
        return f"{LEARNED_KEY_PREFIX}{fingerprint}"

    def get(self, fingerprint: str) -> Optional[LearnedExam]:
        raw = self.kv.get(self._key(fingerprint))
        if raw is None:
            return None
        try:
            return LearnedExam.from_dict(json.loads(raw.decode("utf-8")))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Corrupt cache entry for {fingerprint}, ignoring it: {e}")
            return None

    def put(self, exam: LearnedExam) -> None:
        key = self._key(exam.url_fingerprint)
        is_new = self.kv.get(key) is None

        exam.updated_at = time.time()
        payload = json.dumps(exam.to_dict(), ensure_ascii=False)
        self.kv.put(key, payload.encode("utf-8"))

        stats = self.stats()
        if is_new:
            stats["total"] += 1
        stats["last_update"] = datetime.now().isoformat(timespec="seconds")
        self._write_stats(stats)

        logger.info(f"💾 Saved answers for {exam.url} (perfect={exam.perfect}, "
                    f"{len(exam.questions)} questions)")

    def stats(self) -> Dict:
        raw = self.kv.get(STATS_KEY)
        if raw is not None:
            try:
                data = json.loads(raw.decode("utf-8"))
                return {"total": int(data.get("total", 0)), "last_update": data.get("last_update", "")}
            except (ValueError, TypeError) as e:
                logger.error(f"Corrupt cache stats, resetting: {e}")
        return {"total": 0, "last_update": ""}

    def _write_stats(self, stats: Dict):
        self.kv.put(STATS_KEY, json.dumps(stats).encode("utf-8"))

    def clear(self) -> int:
        removed = self.kv.delete(f"{LEARNED_KEY_PREFIX}*")
        self._write_stats({"total": 0, "last_update": ""})
        logger.info(f"🧹 Cleared {removed} cached exams")
        return removed
