"""Distractor Engine

Picks plausible wrong answers for multiple-choice exercises. Candidates
sharing the target's topic are preferred; the rest of the pool fills in
when the topic runs short.
"""
from __future__ import annotations

import random
from typing import Iterable, Literal, Sequence, TypeVar

from core.logging import srs_logger
from engines.types import Item

log = srs_logger()

AnswerField = Literal["text", "translation"]
T = TypeVar("T")


def split_by_topic(target: Item, pool: Iterable[Item]) -> tuple[list[Item], list[Item]]:
    """Split ``pool`` into (same topic as target, everything else).

    Items without a topic never share one, so a topic-less target gets an
    empty restricted pool.
    """
    same_topic: list[Item] = []
    other: list[Item] = []
    topic = target.topic_id
    for candidate in pool:
        if topic is not None and candidate.topic_id == topic:
            same_topic.append(candidate)
        else:
            other.append(candidate)
    return same_topic, other


def pick_distractors(
    target: Item,
    restricted_pool: Sequence[Item],
    fallback_pool: Sequence[Item],
    count: int,
    rng: random.Random | None = None,
    answer_field: AnswerField = "text",
) -> list[Item]:
    """Choose up to ``count`` wrong answers for ``target``.

    The target itself and anything whose answer text matches the target's
    are excluded. Each pool is shuffled independently and the restricted
    pool is drained first. Results have distinct keys and distinct answer
    texts; fewer than ``count`` come back when the pools run dry.
    """
    if count <= 0:
        return []
    rng = rng or random.Random()

    target_answer = _answer(target, answer_field)
    seen_keys = {target.key}
    seen_answers = {target_answer}
    picked: list[Item] = []

    for pool in (restricted_pool, fallback_pool):
        candidates = list(pool)
        rng.shuffle(candidates)
        for candidate in candidates:
            answer = _answer(candidate, answer_field)
            if candidate.key in seen_keys or answer in seen_answers:
                continue
            seen_keys.add(candidate.key)
            seen_answers.add(answer)
            picked.append(candidate)
            if len(picked) == count:
                return picked

    log.debug(
        "insufficient_distractors",
        item_key=target.key,
        requested=count,
        found=len(picked),
    )
    return picked


def shuffle_options(correct: T, distractors: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Correct answer plus distractors in uniformly random order."""
    options = [correct, *distractors]
    (rng or random.Random()).shuffle(options)
    return options


def _answer(item: Item, answer_field: AnswerField) -> str:
    return getattr(item, answer_field).strip()
