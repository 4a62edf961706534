"""
Lexical Sentiment Module

Keyword scoring for recognised speech text.
Zero latency, zero cost, fully deterministic.

Produces a small valence/arousal nudge per utterance; the voice analyzer
blends it into its estimate rather than overwriting anything.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from enum import Enum
import re


class LexicalCategory(Enum):
    """Categories of keyword matches."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    EXCITEMENT = "excitement"


# Per-match contributions
CATEGORY_WEIGHTS: Dict[LexicalCategory, float] = {
    LexicalCategory.POSITIVE: 0.2,     # valence
    LexicalCategory.NEGATIVE: -0.2,    # valence
    LexicalCategory.EXCITEMENT: 0.3,   # arousal
}

KEYWORDS: Dict[LexicalCategory, List[str]] = {
    LexicalCategory.POSITIVE: [
        "good", "great", "excellent", "amazing", "wonderful", "happy",
        "love", "like", "yes", "nice", "awesome", "cool",
        "好", "棒", "很好", "喜欢",
    ],
    LexicalCategory.NEGATIVE: [
        "bad", "terrible", "awful", "hate", "no", "stop", "wrong", "error",
        "stupid", "ugh",
        "坏", "糟糕", "不好", "讨厌", "停止",
    ],
    LexicalCategory.EXCITEMENT: [
        "wow", "amazing", "incredible", "fantastic", "excited", "yay",
        "哇", "太棒了", "兴奋", "激动",
    ],
}


def _compile(word: str) -> re.Pattern:
    # CJK words have no word boundaries; match them as substrings
    if word.isascii():
        return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)
    return re.compile(re.escape(word))


@dataclass
class LexicalScore:
    """Result of scoring one utterance."""
    valence: float        # -1.0 to 1.0
    arousal: float        # 0.0 to 1.0
    matches: Dict[LexicalCategory, List[str]] = field(default_factory=dict)

    @property
    def match_count(self) -> int:
        return sum(len(words) for words in self.matches.values())

    @property
    def is_empty(self) -> bool:
        return self.match_count == 0


class LexicalSentimentScorer:
    """Keyword-list sentiment scorer with pre-compiled patterns."""

    def __init__(self, keywords: Optional[Dict[LexicalCategory, List[str]]] = None):
        self.keywords = keywords or KEYWORDS
        self._compiled: Dict[LexicalCategory, List[Tuple[str, re.Pattern]]] = {
            category: [(w, _compile(w)) for w in words]
            for category, words in self.keywords.items()
        }

    def score(self, text: str) -> LexicalScore:
        """Score an utterance. Empty text scores zero."""
        text = (text or "").strip()
        if not text:
            return LexicalScore(valence=0.0, arousal=0.0)

        matches: Dict[LexicalCategory, List[str]] = {}
        for category, patterns in self._compiled.items():
            found = [word for word, p in patterns if p.search(text)]
            if found:
                matches[category] = found

        valence = (
            len(matches.get(LexicalCategory.POSITIVE, [])) * CATEGORY_WEIGHTS[LexicalCategory.POSITIVE] +
            len(matches.get(LexicalCategory.NEGATIVE, [])) * CATEGORY_WEIGHTS[LexicalCategory.NEGATIVE]
        )
        arousal = len(matches.get(LexicalCategory.EXCITEMENT, [])) * CATEGORY_WEIGHTS[LexicalCategory.EXCITEMENT]

        return LexicalScore(
            valence=max(-1.0, min(1.0, valence)),
            arousal=max(0.0, min(1.0, arousal)),
            matches=matches,
        )
