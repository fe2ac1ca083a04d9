"""DailyTally model and the counter key layout shared by every store."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from pydantic import BaseModel, Field

STATS_ROOT = "quiz_stats"
SCORES_BUCKET = "scores"
_QUESTION_BUCKET = re.compile(r"^q(\d+)$")
_LEGACY_ANSWER_KEY = re.compile(r"_a(\d+)$")


@dataclass(frozen=True)
class CounterKey:
    day: str
    bucket: str
    item: str

    @property
    def path(self) -> str:
        return f"{STATS_ROOT}/{self.day}/{self.bucket}/{self.item}"


def vote_key(day: str, question_index: int, answer_id: int) -> CounterKey:
    if question_index < 0 or answer_id < 0:
        raise ValueError("Question index and answer id must be non-negative.")
    return CounterKey(day=day, bucket=f"q{question_index}", item=str(answer_id))


def score_key(day: str, score: int) -> CounterKey:
    if score < 0:
        raise ValueError("Score must be non-negative.")
    return CounterKey(day=day, bucket=SCORES_BUCKET, item=str(score))


def _as_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value >= 0:
        return value
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return None


def _as_index(raw: str) -> int | None:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


class DailyTally(BaseModel):
    answer_counts: Dict[int, Dict[int, int]] = Field(default_factory=dict)
    score_counts: Dict[int, int] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.answer_counts and not self.score_counts

    def add(self, key: CounterKey, amount: int = 1) -> None:
        """Apply an increment in place. Used by the in-memory store only."""
        item = _as_index(key.item)
        if item is None:
            raise ValueError(f"Counter item must be a non-negative integer: {key.item!r}")
        if key.bucket == SCORES_BUCKET:
            self.score_counts[item] = self.score_counts.get(item, 0) + amount
            return
        match = _QUESTION_BUCKET.match(key.bucket)
        if match is None:
            raise ValueError(f"Unknown counter bucket {key.bucket!r}")
        question = self.answer_counts.setdefault(int(match.group(1)), {})
        question[item] = question.get(item, 0) + amount

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "DailyTally":
        """Parse the store layout ``{"q0": {"2": 5}, "scores": {"3": 1}}``.

        Legacy answer keys such as ``2026-02-11_q0_a2`` are folded into the
        plain answer id. Malformed counts are dropped.
        """
        tally = cls()
        if not payload:
            return tally
        for bucket, raw_counts in payload.items():
            if isinstance(raw_counts, list):
                raw_counts = {str(index): value for index, value in enumerate(raw_counts) if value is not None}
            if not isinstance(raw_counts, Mapping):
                continue
            if bucket == SCORES_BUCKET:
                for raw_score, raw_value in raw_counts.items():
                    score = _as_index(raw_score)
                    count = _as_count(raw_value)
                    if score is None or count is None:
                        continue
                    tally.score_counts[score] = tally.score_counts.get(score, 0) + count
                continue
            match = _QUESTION_BUCKET.match(str(bucket))
            if match is None:
                continue
            question: Dict[int, int] = {}
            for raw_answer, raw_value in raw_counts.items():
                legacy = _LEGACY_ANSWER_KEY.search(str(raw_answer))
                answer = int(legacy.group(1)) if legacy else _as_index(raw_answer)
                count = _as_count(raw_value)
                if answer is None or count is None:
                    continue
                question[answer] = question.get(answer, 0) + count
            if question:
                tally.answer_counts[int(match.group(1))] = question
        return tally

    def to_payload(self) -> Dict[str, Dict[str, int]]:
        payload: Dict[str, Dict[str, int]] = {}
        for question in sorted(self.answer_counts):
            payload[f"q{question}"] = {
                str(answer): count for answer, count in sorted(self.answer_counts[question].items())
            }
        if self.score_counts:
            payload[SCORES_BUCKET] = {str(score): count for score, count in sorted(self.score_counts.items())}
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "DailyTally":
        return cls.from_payload(json.loads(raw))


__all__ = [
    "CounterKey",
    "DailyTally",
    "SCORES_BUCKET",
    "STATS_ROOT",
    "score_key",
    "vote_key",
]
