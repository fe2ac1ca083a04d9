"""Fire-and-forget vote and score tallying.

A lost tally is acceptable; a blocked quiz flow is not. Every increment runs
on a background executor and failures are logged, reported and dropped.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional, Sequence

from .counters import CounterStore
from .tally import CounterKey, score_key, vote_key
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class VoteTallyWriter:
    def __init__(self, store: CounterStore, executor: Optional[ThreadPoolExecutor] = None) -> None:
        self._store = store
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="vote-tally")

    def record_vote(self, day: str, question_index: int, answer_id: int) -> Optional[Future]:
        try:
            key = vote_key(day, question_index, answer_id)
        except ValueError as exc:
            logger.warning("Dropping malformed vote for %s q%s a%s: %s", day, question_index, answer_id, exc)
            return None
        return self._submit(key)

    def record_score(self, day: str, score: int) -> Optional[Future]:
        try:
            key = score_key(day, score)
        except ValueError as exc:
            logger.warning("Dropping malformed score tally for %s: %s", day, exc)
            return None
        return self._submit(key)

    def record_completion(self, day: str, answers: Sequence[int], score: int) -> List[Future]:
        """One vote per answered question plus the final score."""
        futures = [self.record_vote(day, index, answer_id) for index, answer_id in enumerate(answers)]
        futures.append(self.record_score(day, score))
        return [future for future in futures if future is not None]

    def _submit(self, key: CounterKey) -> Optional[Future]:
        try:
            return self._executor.submit(self._increment, key)
        except RuntimeError as exc:
            # executor already shut down
            logger.warning("Dropping tally for %s: %s", key.path, exc)
            return None

    def _increment(self, key: CounterKey) -> None:
        try:
            self._store.increment(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Vote tally increment failed for %s: %s", key.path, exc)
            emit_event("vote_tally_dropped", key=key.path, error=exc)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


__all__ = ["VoteTallyWriter"]
