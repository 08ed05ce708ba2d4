"""Building blocks for table-driven, per-language query rules.

A ``LanguageRules`` table holds one language family's vocabulary (intent
keywords, temporal phrases, metric and activity words, stopwords) plus any
location-extraction rules specific to that language. The classifier merges
all tables: vocabulary becomes one shared ``Lexicon`` (the location denylist),
extraction rules are ordered by ``Stage`` and then by declaration order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from functools import lru_cache
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Pattern, Tuple

from skyroute.domain import Intent, Metric

# Han (incl. ext. A), Katakana (incl. phonetic ext.), Hangul syllables
CJK_CHARS = "㐀-䶿一-鿿゠-ヿㇰ-ㇿ가-힯"
HIRAGANA = "぀-ゟ"
ARABIC_CHARS = "؀-ۿ"
DEVANAGARI_CHARS = "ऀ-ॿ"
LATIN_CHARS = "A-Za-zÀ-ɏ"

_CJK_RE = re.compile(f"[{CJK_CHARS}]")
_UNSEGMENTED_RE = re.compile(f"[{CJK_CHARS}{HIRAGANA}]")


class Stage(IntEnum):
    """Precedence of location-extraction rules (lower runs first)."""
    PREPOSITIONAL = 1
    PROPER_NOUN = 2
    GEOGRAPHIC_SUFFIX = 3
    WHOLE_TEXT = 4


STAGE_CONFIDENCE: Dict[Stage, float] = {
    Stage.PREPOSITIONAL: 0.9,
    Stage.PROPER_NOUN: 0.8,
    Stage.GEOGRAPHIC_SUFFIX: 0.7,
    Stage.WHOLE_TEXT: 0.5,
}

CONTEXT_LOCATION_CONFIDENCE = 0.6


def is_unsegmented(text: str) -> bool:
    """True when `text` contains CJK or kana characters (no spaces between words)."""
    return bool(_UNSEGMENTED_RE.search(text))


@dataclass(frozen=True)
class Lexicon:
    """Merged vocabulary of every language table; used to reject location candidates."""
    words: FrozenSet[str] = frozenset()
    terms: Tuple[str, ...] = ()
    separators: FrozenSet[str] = frozenset()
    trailing_particles: Tuple[str, ...] = ()

    def cut_terms(self, text: str) -> str:
        """Blank out known vocabulary and separator characters in unsegmented text."""
        out = text
        for term in self.terms:
            if term in out:
                out = out.replace(term, " ")
        if self.separators:
            out = "".join(" " if ch in self.separators else ch for ch in out)
        return out

    def strip_particles(self, candidate: str) -> str:
        for particle in self.trailing_particles:
            if candidate.endswith(particle) and len(candidate) > len(particle) + 1:
                return candidate[: -len(particle)]
        return candidate

    def denies(self, candidate: str | None) -> bool:
        """True if `candidate` is vocabulary rather than a place name."""
        if not candidate:
            return True
        c = candidate.strip().lower()
        if not c:
            return True
        if c in self.words:
            return True
        tokens = c.split()
        if tokens and all(t in self.words for t in tokens):
            return True
        if is_unsegmented(c):
            return not _CJK_RE.search(self.cut_terms(c))
        return False


def build_lexicon(rule_sets: Iterable["LanguageRules"]) -> Lexicon:
    """Merge the vocabulary of all tables into one denylist."""
    words: set[str] = set()
    terms: set[str] = set()
    separators: set[str] = set()
    particles: list[str] = []
    for rules in rule_sets:
        for item in rules.vocabulary():
            item = item.strip().lower()
            if not item:
                continue
            if is_unsegmented(item):
                # single characters are too ambiguous to cut out of place names
                if len(item) >= 2:
                    terms.add(item)
            else:
                words.add(item)
                words.update(item.split())
        separators.update(rules.separators)
        particles.extend(p for p in rules.trailing_particles if p not in particles)
    return Lexicon(
        words=frozenset(words),
        terms=tuple(sorted(terms, key=lambda t: (-len(t), t))),
        separators=frozenset(separators),
        trailing_particles=tuple(sorted(particles, key=len, reverse=True)),
    )


_CJK_RUN_RE = re.compile(f"[{CJK_CHARS}]+")


def unsegmented_candidates(text: str, lexicon: Lexicon) -> Iterator[str]:
    """Han/Katakana/Hangul runs left after cutting vocabulary out of `text`."""
    for match in _CJK_RUN_RE.finditer(lexicon.cut_terms(text)):
        candidate = lexicon.strip_particles(match.group(0))
        if len(candidate) >= 2 and not lexicon.denies(candidate):
            yield candidate


Extractor = Callable[[str, Lexicon], Optional[str]]


@dataclass(frozen=True)
class ExtractionRule:
    """One location-extraction pattern with its precedence stage."""
    name: str
    stage: Stage
    extract: Extractor


def order_rules(rules: Iterable[ExtractionRule]) -> Tuple[ExtractionRule, ...]:
    """Stable sort by stage; declaration order breaks ties."""
    return tuple(sorted(rules, key=lambda r: int(r.stage)))


@dataclass(frozen=True)
class LanguageRules:
    """Vocabulary and extraction rules for one language family."""
    code: str
    forecast_keywords: Tuple[str, ...] = ()
    historical_keywords: Tuple[str, ...] = ()
    advice_keywords: Tuple[str, ...] = ()
    location_search_keywords: Tuple[str, ...] = ()
    current_keywords: Tuple[str, ...] = ()
    day_offsets: Mapping[str, Tuple[int, int]] = field(default_factory=dict)
    weather_words: Tuple[str, ...] = ()
    stopwords: Tuple[str, ...] = ()
    metric_keywords: Mapping[Metric, Tuple[str, ...]] = field(default_factory=dict)
    activity_keywords: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    imperial_keywords: Tuple[str, ...] = ()
    duration_patterns: Tuple[Tuple[Pattern[str], str], ...] = ()
    separators: str = ""
    trailing_particles: Tuple[str, ...] = ()
    extraction_rules: Tuple[ExtractionRule, ...] = ()

    def intent_keywords(self, intent: Intent) -> Tuple[str, ...]:
        return {
            Intent.FORECAST: self.forecast_keywords,
            Intent.HISTORICAL: self.historical_keywords,
            Intent.ADVICE: self.advice_keywords,
            Intent.LOCATION_SEARCH: self.location_search_keywords,
            Intent.CURRENT: self.current_keywords,
        }[intent]

    def vocabulary(self) -> Iterator[str]:
        """Every word this table knows that can never be a location."""
        for intent in Intent:
            yield from self.intent_keywords(intent)
        yield from self.day_offsets.keys()
        yield from self.weather_words
        yield from self.stopwords
        yield from self.imperial_keywords
        for words in self.metric_keywords.values():
            yield from words
        for words in self.activity_keywords.values():
            yield from words


# ---------------------------------------------------------------------------
# Keyword matching
# ---------------------------------------------------------------------------


@lru_cache(maxsize=4096)
def _keyword_pattern(keyword: str) -> Pattern[str]:
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])")


def contains_keyword(text_lower: str, keyword: str) -> bool:
    """Word-boundary match for Latin keywords, substring match otherwise."""
    kw = keyword.lower()
    if kw.isascii():
        return bool(_keyword_pattern(kw).search(text_lower))
    return kw in text_lower


def first_keyword(text_lower: str, keywords: Iterable[str]) -> Optional[str]:
    """Longest keyword found in the text, or None."""
    for kw in sorted(keywords, key=len, reverse=True):
        if contains_keyword(text_lower, kw):
            return kw
    return None


# ---------------------------------------------------------------------------
# Language and number helpers
# ---------------------------------------------------------------------------

TRADITIONAL_MARKERS = frozenset("氣預溫風週濕雲後幾嗎麼們這個來時間報壓們點區縣臺灣體見質")
SIMPLIFIED_MARKERS = frozenset("气预温风周湿云后几吗么们这个来时间报压点区县台湾体见质")


def detect_language(text: str) -> str:
    """Best-effort language tag from the scripts present in `text`."""
    if re.search(f"[{HIRAGANA}゠-ヿ]", text):
        return "ja"
    if re.search("[가-힯]", text):
        return "ko"
    if re.search("[㐀-䶿一-鿿]", text):
        chars = set(text)
        traditional = len(chars & TRADITIONAL_MARKERS)
        simplified = len(chars & SIMPLIFIED_MARKERS)
        if traditional > simplified:
            return "zh-TW"
        if simplified > traditional:
            return "zh-CN"
        return "zh"
    if re.search(f"[{ARABIC_CHARS}]", text):
        return "ar"
    if re.search(f"[{DEVANAGARI_CHARS}]", text):
        return "hi"
    return "en"


_CJK_NUMERALS = {"一": 1, "兩": 2, "两": 2, "二": 2, "三": 3, "四": 4, "五": 5, "六": 6, "七": 7, "八": 8, "九": 9, "十": 10}


def parse_count(raw: str) -> Optional[int]:
    """Parse ASCII digits or a single CJK numeral (一..十)."""
    raw = raw.strip()
    if raw.isdigit():
        return int(raw)
    return _CJK_NUMERALS.get(raw)


# ---------------------------------------------------------------------------
# Language-independent tables
# ---------------------------------------------------------------------------

ACTIVITY_METRICS: Dict[str, Tuple[Metric, ...]] = {
    "surfing": (Metric.WIND, Metric.PRECIPITATION, Metric.CONDITIONS, Metric.TEMPERATURE),
    "hiking": (Metric.UV_INDEX, Metric.VISIBILITY, Metric.TEMPERATURE, Metric.PRECIPITATION, Metric.WIND),
    "wedding": (Metric.PRECIPITATION, Metric.WIND, Metric.HUMIDITY, Metric.TEMPERATURE),
    "sport": (Metric.TEMPERATURE, Metric.HUMIDITY, Metric.WIND, Metric.UV_INDEX),
    "cycling": (Metric.WIND, Metric.PRECIPITATION, Metric.TEMPERATURE, Metric.AIR_QUALITY),
    "beach": (Metric.UV_INDEX, Metric.TEMPERATURE, Metric.WIND, Metric.CONDITIONS),
    "picnic": (Metric.PRECIPITATION, Metric.TEMPERATURE, Metric.WIND, Metric.CONDITIONS),
    "running": (Metric.TEMPERATURE, Metric.HUMIDITY, Metric.AIR_QUALITY, Metric.FEELS_LIKE),
}
