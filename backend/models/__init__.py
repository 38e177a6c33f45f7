from models.vocabulary import (
    VocabularyWord, UserVocabularyWord, ReviewStateRecord, ReviewStreak,
)

__all__ = [
    "VocabularyWord", "UserVocabularyWord", "ReviewStateRecord", "ReviewStreak",
]
