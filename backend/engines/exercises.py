"""Exercise Selector

Maps an item's mastery stage to the exercise types appropriate for it and
assembles the chosen exercise with shuffled multiple-choice options.
Supports: intro, audio_to_target, target_to_translation,
          translation_to_target, sentence_cloze, sentence_to_meaning
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from core.logging import srs_logger
from engines.distractors import AnswerField, pick_distractors, shuffle_options, split_by_topic
from engines.types import Item, Stage

log = srs_logger()

CLOZE_BLANK = "____"


class ExerciseType(str, Enum):
    INTRO = "intro"
    AUDIO_TO_TARGET = "audio_to_target"
    TARGET_TO_TRANSLATION = "target_to_translation"
    TRANSLATION_TO_TARGET = "translation_to_target"
    SENTENCE_CLOZE = "sentence_cloze"
    SENTENCE_TO_MEANING = "sentence_to_meaning"

    @property
    def needs_sentence(self) -> bool:
        return self in SENTENCE_EXERCISES


# Exercise types appropriate for each stage
STAGE_EXERCISES: dict[Stage, tuple[ExerciseType, ...]] = {
    Stage.NEW: (ExerciseType.INTRO,),
    Stage.STAGE_1: (ExerciseType.AUDIO_TO_TARGET,),
    Stage.STAGE_2: (ExerciseType.AUDIO_TO_TARGET, ExerciseType.TARGET_TO_TRANSLATION),
    Stage.STAGE_3: (ExerciseType.SENTENCE_CLOZE, ExerciseType.TARGET_TO_TRANSLATION),
    Stage.STAGE_4: (ExerciseType.TRANSLATION_TO_TARGET, ExerciseType.AUDIO_TO_TARGET),
    Stage.STAGE_5: (ExerciseType.SENTENCE_TO_MEANING,),
}

SENTENCE_EXERCISES = frozenset({ExerciseType.SENTENCE_CLOZE, ExerciseType.SENTENCE_TO_MEANING})

FALLBACK_EXERCISE = ExerciseType.TARGET_TO_TRANSLATION

# Options in the target language; everything else offers translations
TARGET_TEXT_EXERCISES = frozenset({
    ExerciseType.AUDIO_TO_TARGET,
    ExerciseType.TRANSLATION_TO_TARGET,
    ExerciseType.SENTENCE_CLOZE,
})


@dataclass(slots=True)
class Exercise:
    """A single exercise, ready to render."""
    type: ExerciseType
    item_key: str
    prompt: str
    answer: str
    options: list[str] = field(default_factory=list)
    audio_url: str | None = None


def eligible_exercises(stage: Stage, has_sentence_pair: bool) -> tuple[ExerciseType, ...]:
    """Exercise types for ``stage``; never empty."""
    options = STAGE_EXERCISES[stage]
    if not has_sentence_pair:
        options = tuple(e for e in options if not e.needs_sentence) or (FALLBACK_EXERCISE,)
    return options


def pick_exercise(
    stage: Stage,
    has_sentence_pair: bool,
    rng: random.Random | None = None,
) -> ExerciseType:
    """First eligible type, or a random eligible one when ``rng`` is given."""
    options = eligible_exercises(stage, has_sentence_pair)
    if rng is None:
        return options[0]
    return rng.choice(options)


def build_exercise(
    item: Item,
    stage: Stage,
    pool: Sequence[Item],
    count: int = 3,
    rng: random.Random | None = None,
) -> Exercise:
    """Pick an exercise type for ``item`` and fill in prompt, answer and options."""
    exercise_type = pick_exercise(stage, item.has_sentence_pair, rng)

    if exercise_type is ExerciseType.INTRO:
        return Exercise(
            type=exercise_type,
            item_key=item.key,
            prompt=item.text,
            answer=item.translation,
            audio_url=item.audio_url,
        )

    answer_field: AnswerField = "text" if exercise_type in TARGET_TEXT_EXERCISES else "translation"
    restricted, fallback = split_by_topic(item, pool)
    distractors = pick_distractors(item, restricted, fallback, count, rng, answer_field=answer_field)
    answer = getattr(item, answer_field)
    options = shuffle_options(answer, [getattr(d, answer_field) for d in distractors], rng)

    prompt, audio_url = _prompt_for(exercise_type, item)
    return Exercise(
        type=exercise_type,
        item_key=item.key,
        prompt=prompt,
        answer=answer,
        options=options,
        audio_url=audio_url,
    )


def _prompt_for(exercise_type: ExerciseType, item: Item) -> tuple[str, str | None]:
    match exercise_type:
        case ExerciseType.AUDIO_TO_TARGET:
            return item.text, item.audio_url
        case ExerciseType.TARGET_TO_TRANSLATION:
            return item.text, item.audio_url
        case ExerciseType.TRANSLATION_TO_TARGET:
            return item.translation, None
        case ExerciseType.SENTENCE_CLOZE:
            sentence = item.sentence_text or ""
            return sentence.replace(item.text, CLOZE_BLANK, 1), item.sentence_audio_url
        case ExerciseType.SENTENCE_TO_MEANING:
            return item.sentence_text or "", item.sentence_audio_url
    return item.text, item.audio_url
