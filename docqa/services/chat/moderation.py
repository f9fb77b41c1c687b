"""Content moderation for chat questions.

Moderation never blocks a question. A flagged question is still answered,
but its conversation row is marked banned and gets no share token.

English terms come from better-profanity's maintained word list; other
languages are LDNOOBW word lists shipped in ``wordlists/``.
"""

from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
import itertools
import logging
import re
from typing import FrozenSet, Iterable, List, Optional, Sequence

from better_profanity import Profanity

from docqa.core.config import settings

logger = logging.getLogger(__name__)

BAN_REASON_PROFANITY = "profanity"
BAN_REASON_JUNK = "junk"

CUSTOM_TERMS: FrozenSet[str] = frozenset({"n word", "nword"})

LEET_MAP = str.maketrans({"0": "o", "1": "i", "3": "e", "4": "a", "5": "s", "7": "t", "@": "a", "$": "s", "|": "i"})

SEPARATORS = "*_-."
VOWELS = "aeiou"
MAX_MASKED_LETTERS = 2

KEYBOARD_PATTERNS = [
    re.compile(r"^[qwertyuiop]+$", re.IGNORECASE),
    re.compile(r"^[asdfghjkl]+$", re.IGNORECASE),
    re.compile(r"^[zxcvbnm]+$", re.IGNORECASE),
    re.compile(r"^[1234567890]+$"),
]


@dataclass
class ModerationResult:
    should_ban: bool
    reason: Optional[str] = None


def load_wordlist(language: str) -> List[str]:
    """Terms of one packaged word list, lower-cased, comments skipped."""
    path = resources.files("docqa.services.chat").joinpath("wordlists", f"{language}.txt")
    terms = []
    for line in path.read_text(encoding="utf-8").splitlines():
        term = line.strip().lower()
        if term and not term.startswith("#"):
            terms.append(term)
    return terms


@lru_cache(maxsize=8)
def _word_filter(languages: Sequence[str]) -> Profanity:
    profanity = Profanity()
    extra = set(CUSTOM_TERMS)
    for language in languages:
        extra.update(load_wordlist(language))
    profanity.add_censor_words(sorted(extra))
    logger.info(f"Loaded profanity filter with {len(extra)} extra terms for {', '.join(languages) or 'en'}")
    return profanity


def normalize_text(text: str) -> str:
    """Lower-case and undo common evasion: leet digits, separators, spaced letters."""
    if not text:
        return ""
    normalized = re.sub(r"\s+", " ", text.lower())
    normalized = re.sub(r"([a-z])!([a-z])", r"\1i\2", normalized.translate(LEET_MAP))
    normalized = re.sub(r"[*_\-.]", "", normalized)
    normalized = re.sub(r"\b([a-z])\s+([a-z])\s+([a-z])\s+([a-z]+)\b", r"\1\2\3\4", normalized)
    normalized = re.sub(r"\b([a-z])\s+([a-z])\s+([a-z])\b", r"\1\2\3", normalized)
    normalized = re.sub(r"[.,!?;:'\"()\[\]{}]", "", normalized)
    return normalized.strip()


def unmask_candidates(token: str) -> List[str]:
    """Spellings of a token whose separators may hide a vowel (``f_ck`` -> ``fuck``).

    Only tokens with one or two separators between letters produce
    candidates; plain words never do.
    """
    token = token.lower().translate(LEET_MAP).strip(".,!?;:'\"()[]{}")
    positions = [
        i for i, ch in enumerate(token)
        if ch in SEPARATORS and 0 < i < len(token) - 1 and token[i - 1].isalpha() and token[i + 1].isalpha()
    ]
    if not positions or len(positions) > MAX_MASKED_LETTERS:
        return []

    candidates = []
    for fills in itertools.product(list(VOWELS) + [""], repeat=len(positions)):
        chars = list(token)
        for position, fill in zip(positions, fills):
            chars[position] = fill
        candidates.append("".join(ch for ch in chars if ch not in SEPARATORS))
    return candidates


class ContentModerator:
    """Word-list profanity check followed by junk heuristics."""

    def __init__(self, languages: Optional[Iterable[str]] = None):
        self.languages = tuple(languages if languages is not None else settings.MODERATION_LANGUAGES)
        self.word_filter = _word_filter(self.languages)

    def contains_profanity(self, text: str) -> bool:
        if not text:
            return False
        normalized = normalize_text(text)
        if self.word_filter.contains_profanity(text) or self.word_filter.contains_profanity(normalized):
            return True

        for token in text.split():
            for candidate in unmask_candidates(token):
                if self.word_filter.contains_profanity(candidate):
                    return True
        return False

    @staticmethod
    def is_junk(text: str) -> bool:
        """Too short, mostly non-letters, repetitive or keyboard mashing."""
        if not text:
            return False
        trimmed = text.strip()

        if len(trimmed) < 3:
            return not (len(trimmed) == 2 and trimmed.isascii() and trimmed.isalpha())

        compact = re.sub(r"\s", "", trimmed)
        if not compact:
            return True

        letters = sum(1 for ch in compact if ch.isascii() and ch.isalpha())
        if letters / len(compact) < 0.3 and len(compact) > 2:
            return True

        most_common = Counter(compact.lower()).most_common(1)[0][1]
        if len(compact) >= 4 and most_common / len(compact) > 0.5:
            return True

        if len(compact) >= 4 and any(p.match(compact) for p in KEYBOARD_PATTERNS):
            return True

        if len(compact) >= 3 and len(set(compact)) == 1:
            return True

        if len(compact) >= 6:
            pair = compact[:2]
            matches = sum(1 for i in range(0, len(compact) - 1, 2) if compact[i:i + 2] == pair)
            if matches / (len(compact) / 2) > 0.7:
                return True

        return False

    def check(self, text: str) -> ModerationResult:
        """Profanity takes precedence over junk."""
        if self.contains_profanity(text):
            logger.info("Message flagged for profanity")
            return ModerationResult(True, BAN_REASON_PROFANITY)
        if self.is_junk(text):
            logger.info("Message flagged as junk")
            return ModerationResult(True, BAN_REASON_JUNK)
        return ModerationResult(False)


_moderator: Optional[ContentModerator] = None


def get_moderator() -> ContentModerator:
    global _moderator
    if _moderator is None:
        _moderator = ContentModerator()
    return _moderator
