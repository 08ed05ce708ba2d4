"""English vocabulary and the `in|at|for <place>` extraction rule."""

from __future__ import annotations

import re
from typing import Optional

from skyroute.classifier.rules import LATIN_CHARS, ExtractionRule, LanguageRules, Lexicon, Stage
from skyroute.domain import Metric

_PREPOSITION_RE = re.compile(r"\b(?:in|at|for|near)\s+", re.IGNORECASE)
_LATIN_WORD_RE = re.compile(rf"[{LATIN_CHARS}][{LATIN_CHARS}'’\-]*")
_CLAUSE_BREAK_RE = re.compile(r"[,!?;:()\n]")


_CONTRACTION_RE = re.compile(r"(?:n't|'s|'re|'ll|'ve|'d|'m)$", re.IGNORECASE)
_NEGATION_STEMS = {"won": "will", "ca": "can", "sha": "shall"}


def clean_word(raw: str) -> str:
    """Strip quotes, trailing periods, possessives and contraction endings from a token.

    "What's" becomes "What", "London's" becomes "London" and "won't" becomes
    "will", so stopword and proper-noun checks see the bare word.
    """
    word = raw.replace("’", "'").strip("\"'“”‘.")
    match = _CONTRACTION_RE.search(word)
    if match and match.start() > 0:
        stem = word[: match.start()]
        if match.group(0).lower() == "n't":
            stem = _NEGATION_STEMS.get(stem.lower(), stem)
        word = stem
    return word


def _prepositional(text: str, lexicon: Lexicon) -> Optional[str]:
    for match in _PREPOSITION_RE.finditer(text):
        clause = _CLAUSE_BREAK_RE.split(text[match.end():], maxsplit=1)[0]
        words = []
        for raw in clause.split():
            word = clean_word(raw)
            if not word or not _LATIN_WORD_RE.fullmatch(word) or word.lower() in lexicon.words:
                break
            words.append(word)
            if len(words) == 4 or raw.endswith("."):
                break
        if words:
            return " ".join(words)
    return None


def _duration(pattern: str, unit: str):
    return re.compile(pattern, re.IGNORECASE), unit


RULES = LanguageRules(
    code="en",
    forecast_keywords=(
        "forecast", "tomorrow", "day after tomorrow", "next week", "this week", "weekend",
        "this weekend", "next few days", "coming days", "upcoming", "later today", "later", "next",
    ),
    historical_keywords=(
        "yesterday", "last week", "last month", "last year", "historical", "history",
        "in the past", "past", "ago", "previous", "was it",
    ),
    advice_keywords=(
        "should i", "should", "umbrella", "jacket", "coat", "wear", "bring", "recommend",
        "advice", "suggest", "good day", "good time", "safe to", "ok to", "okay to",
    ),
    location_search_keywords=(
        "where is", "find location", "locate", "coordinates", "latitude", "longitude",
        "which city", "search location",
    ),
    current_keywords=("right now", "now", "currently", "current", "today", "tonight", "at the moment"),
    day_offsets={
        "today": (0, 0),
        "tonight": (0, 0),
        "tomorrow": (1, 1),
        "day after tomorrow": (2, 2),
        "yesterday": (-1, -1),
        "day before yesterday": (-2, -2),
        "this week": (0, 6),
        "next week": (1, 7),
        "last week": (-7, -1),
    },
    weather_words=(
        "weather", "conditions", "condition", "climate", "outlook", "report", "hot", "cold",
        "warm", "cool", "sunny", "rainy", "windy", "cloudy", "snowy", "foggy", "humid", "dry",
        "wet", "good", "bad", "outside", "degrees", "celsius", "metric",
    ),
    stopwords=(
        "a", "an", "the", "what", "what's", "whats", "how", "how's", "hows", "is", "are", "was",
        "were", "will", "would", "should", "could", "can", "do", "does", "did", "i", "me", "my",
        "we", "our", "you", "your", "it", "it's", "its", "there", "this", "that", "these",
        "those", "of", "to", "in", "at", "for", "on", "near", "and", "or", "with", "about",
        "like", "be", "going", "gonna", "get", "tell", "show", "give", "please", "check", "any",
        "some", "much", "many", "need", "want", "know", "out", "here", "right", "up", "look",
        "looks", "looking", "chance", "probability", "level", "levels", "index", "high", "low", "max",
        "min", "hey", "hi", "hello", "time", "day", "days", "hour", "hours", "week", "weeks",
        "month", "morning", "afternoon", "evening", "night", "am", "pm", "if", "then", "so",
        "go", "expected", "expect", "there's", "let", "lets", "let's", "whether",
    ),
    metric_keywords={
        Metric.TEMPERATURE: ("temperature", "temp", "hot", "cold", "warm", "degrees", "celsius", "fahrenheit"),
        Metric.HUMIDITY: ("humidity", "humid", "muggy"),
        Metric.PRECIPITATION: (
            "rain", "raining", "rainy", "snow", "snowing", "precipitation", "drizzle",
            "shower", "showers", "umbrella", "hail", "sleet",
        ),
        Metric.WIND: ("wind", "windy", "gust", "gusts", "breeze", "breezy"),
        Metric.PRESSURE: ("pressure", "barometric", "barometer"),
        Metric.VISIBILITY: ("visibility", "fog", "foggy", "haze", "hazy", "mist"),
        Metric.UV_INDEX: ("uv", "uv index", "sunburn", "sunscreen"),
        Metric.AIR_QUALITY: ("air quality", "aqi", "pollution", "pm2.5", "smog", "pollen"),
        Metric.CONDITIONS: ("conditions", "sunny", "cloudy", "clear", "storm", "stormy", "thunder", "overcast"),
        Metric.FEELS_LIKE: ("feels like", "feel like", "apparent temperature", "wind chill", "heat index"),
        Metric.DEW_POINT: ("dew point", "dewpoint"),
    },
    activity_keywords={
        "surfing": ("surf", "surfing", "surfer"),
        "hiking": ("hike", "hiking", "trek", "trekking", "trail"),
        "wedding": ("wedding", "ceremony"),
        "sport": ("sport", "sports", "football", "soccer", "tennis", "golf", "baseball", "basketball"),
        "cycling": ("cycling", "bike", "biking", "bicycle"),
        "beach": ("beach", "swim", "swimming"),
        "picnic": ("picnic", "bbq", "barbecue"),
        "running": ("run", "running", "jog", "jogging"),
    },
    imperial_keywords=("fahrenheit", "°f", "imperial"),
    duration_patterns=(
        _duration(r"(\d+)\s*-?\s*days?\b", "days"),
        _duration(r"(\d+)\s*-?\s*(?:hours?|hrs?)\b", "hours"),
        _duration(r"(\d+)\s*-?\s*weeks?\b", "weeks"),
    ),
    extraction_rules=(
        ExtractionRule(name="en_preposition", stage=Stage.PREPOSITIONAL, extract=_prepositional),
    ),
)
