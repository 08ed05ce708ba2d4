"""Deterministic, rule-based query classifier.

`ConfidenceClassifier.classify` turns free text into a `ParsedQuery` using
only the language tables: no network, no model. It never raises; a failure
inside a rule is logged and yields the base-confidence result so the
fallback orchestrator can still decide what to do.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from itertools import chain
from typing import Callable, Iterable, Optional, Sequence, Tuple

from skyroute.classifier import arabic, chinese, english, hindi, japanese, korean, scripts
from skyroute.classifier.rules import (
    ACTIVITY_METRICS,
    CONTEXT_LOCATION_CONFIDENCE,
    STAGE_CONFIDENCE,
    ExtractionRule,
    LanguageRules,
    build_lexicon,
    contains_keyword,
    detect_language,
    first_keyword,
    order_rules,
    parse_count,
)
from skyroute.domain import (
    DEFAULT_INTENT,
    DEFAULT_METRICS,
    Intent,
    IntentInfo,
    LocationInfo,
    ParsedQuery,
    ParsingSource,
    TimeKind,
    TimeScope,
    Units,
    sort_metrics,
)
from utils.logging_utils import get_tagged_logger, preview_text

logger = get_tagged_logger(__name__, tag="classifier")

DEFAULT_RULE_SETS: Tuple[LanguageRules, ...] = (
    english.RULES,
    chinese.RULES,
    japanese.RULES,
    korean.RULES,
    arabic.RULES,
    hindi.RULES,
)

BASE_CONFIDENCE = 0.4
LOCATION_BONUS = 0.3
INTENT_BONUS = 0.2
KEYWORD_INTENT_CONFIDENCE = 0.8
DEFAULT_INTENT_CONFIDENCE = 0.5

# forecast > historical > advice > location_search > current
INTENT_PRECEDENCE = (
    Intent.FORECAST,
    Intent.HISTORICAL,
    Intent.ADVICE,
    Intent.LOCATION_SEARCH,
    Intent.CURRENT,
)

_CONTEXT_LOCATION_RE = re.compile(r"(?:location|地點|地点|場所|위치)\s*[:：]\s*([^,;，；、\n]+)", re.IGNORECASE)
_CONTEXT_TIMEFRAME_RE = re.compile(r"(?:timeframe|time|時間|时间)\s*[:：]\s*([^,;，；、\n]+)", re.IGNORECASE)
_CONTEXT_LANGUAGES = (
    ("zh-TW", ("繁體中文", "繁体中文", "traditional chinese")),
    ("zh-CN", ("简体中文", "簡體中文", "simplified chinese")),
    ("ja", ("日本語", "日本语", "japanese")),
    ("ko", ("한국어", "korean")),
    ("en", ("english", "英文", "英語", "英语")),
)
_CONTEXT_IMPERIAL = ("華氏", "华氏", "fahrenheit", "°f", "imperial")
_CONTEXT_METRIC = ("攝氏", "摄氏", "celsius", "°c", "metric")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ContextHints:
    """Preferences pulled out of the caller's free-form context string."""
    location: Optional[str] = None
    timeframe: Optional[str] = None
    language: Optional[str] = None
    units: Optional[Units] = None


def parse_context(context: Optional[str]) -> ContextHints:
    if not context:
        return ContextHints()
    lowered = context.lower()

    location = None
    match = _CONTEXT_LOCATION_RE.search(context)
    if match and match.group(1).strip():
        location = match.group(1).strip()

    timeframe = None
    match = _CONTEXT_TIMEFRAME_RE.search(context)
    if match and match.group(1).strip():
        timeframe = match.group(1).strip()

    language = None
    for code, markers in _CONTEXT_LANGUAGES:
        if any(contains_keyword(lowered, marker) for marker in markers):
            language = code
            break

    units = None
    if any(contains_keyword(lowered, marker) for marker in _CONTEXT_IMPERIAL):
        units = Units.IMPERIAL
    elif any(contains_keyword(lowered, marker) for marker in _CONTEXT_METRIC):
        units = Units.METRIC

    return ContextHints(location=location, timeframe=timeframe, language=language, units=units)


def overall_confidence(location: LocationInfo, intent: IntentInfo) -> float:
    """0.4 base, +0.3 with a location, +0.2 when the intent is not the default."""
    score = BASE_CONFIDENCE
    if location.found:
        score += LOCATION_BONUS
    if intent.primary != DEFAULT_INTENT:
        score += INTENT_BONUS
    return round(max(0.0, min(1.0, score)), 4)


class ConfidenceClassifier:
    """Rule-based first pass over a weather query."""

    def __init__(
        self,
        rule_sets: Sequence[LanguageRules] = DEFAULT_RULE_SETS,
        clock: Callable[[], datetime] = utcnow,
        script_rules: Iterable[ExtractionRule] = scripts.RULES,
    ) -> None:
        self.rule_sets = tuple(rule_sets)
        self.lexicon = build_lexicon(self.rule_sets)
        self.extraction_rules = order_rules(
            chain(chain.from_iterable(rs.extraction_rules for rs in self.rule_sets), script_rules)
        )
        self._clock = clock
        self._day_offsets = sorted(
            chain.from_iterable(rs.day_offsets.items() for rs in self.rule_sets),
            key=lambda item: len(item[0]),
            reverse=True,
        )

    def classify(self, text: str, context: Optional[str] = None) -> ParsedQuery:
        try:
            return self._classify(text or "", context)
        except Exception:
            logger.exception(
                "Rule classification failed; returning base result",
                extra={"query": preview_text(text)},
            )
            return ParsedQuery(
                original_text=text or "",
                context=context,
                overall_confidence=BASE_CONFIDENCE,
                parsing_source=ParsingSource.RULES_ONLY,
            )

    def _classify(self, text: str, context: Optional[str]) -> ParsedQuery:
        lowered = text.lower()
        hints = parse_context(context)

        location = self.extract_location(text)
        if not location.found and hints.location:
            location = LocationInfo(name=hints.location, confidence=CONTEXT_LOCATION_CONFIDENCE, source="context")

        intent = self.detect_intent(lowered)
        temporal_text = lowered
        if intent.primary == DEFAULT_INTENT and hints.timeframe:
            temporal_text = hints.timeframe.lower()
            intent = self.detect_intent(temporal_text)
        time_scope = self.build_time_scope(temporal_text, intent)

        metrics, activities = self.detect_metrics(lowered)
        language = hints.language or detect_language(text)
        units = hints.units or self.detect_units(lowered)

        parsed = ParsedQuery(
            original_text=text,
            location=location,
            intent=intent,
            time_scope=time_scope,
            metrics=metrics,
            activities=activities,
            language=language,
            units=units,
            context=context,
            overall_confidence=overall_confidence(location, intent),
            parsing_source=ParsingSource.RULES_ONLY,
        )
        logger.debug(
            "Classified query",
            extra={
                "query": preview_text(text),
                "location": location.name,
                "location_rule": location.source,
                "intent": intent.primary.value,
                "confidence": parsed.overall_confidence,
            },
        )
        return parsed

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def extract_location(self, text: str) -> LocationInfo:
        """Run extraction rules in stage order; first accepted candidate wins."""
        for rule in self.extraction_rules:
            candidate = rule.extract(text, self.lexicon)
            if not candidate:
                continue
            candidate = candidate.strip(" \t\n.,!?;:。，！？")
            if not candidate or self.lexicon.denies(candidate):
                continue
            return LocationInfo(name=candidate, confidence=STAGE_CONFIDENCE[rule.stage], source=rule.name)
        return LocationInfo()

    def detect_intent(self, lowered: str) -> IntentInfo:
        for intent in INTENT_PRECEDENCE:
            for rules in self.rule_sets:
                if first_keyword(lowered, rules.intent_keywords(intent)):
                    return IntentInfo(primary=intent, confidence=KEYWORD_INTENT_CONFIDENCE)
        return IntentInfo(primary=DEFAULT_INTENT, confidence=DEFAULT_INTENT_CONFIDENCE)

    def build_time_scope(self, lowered: str, intent: IntentInfo) -> TimeScope:
        if intent.primary == Intent.FORECAST:
            kind = TimeKind.FORECAST
        elif intent.primary == Intent.HISTORICAL:
            kind = TimeKind.HISTORICAL
        else:
            kind = TimeKind.CURRENT

        period, offsets = self._match_period(lowered)
        duration, count, unit = self._match_duration(lowered)

        now = self._clock()
        start = end = None
        if offsets is None and unit == "hours" and count:
            start, end = now, now + timedelta(hours=count)
        else:
            if offsets is None and count:
                days = count * 7 if unit == "weeks" else count
                offsets = (-days, -1) if kind == TimeKind.HISTORICAL else (0, days)
            if offsets is None and kind == TimeKind.HISTORICAL:
                offsets = (-1, -1)
            if offsets is not None:
                midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
                start = midnight + timedelta(days=offsets[0])
                end = midnight + timedelta(days=offsets[1], hours=23, minutes=59, seconds=59)

        matched = period is not None or duration is not None
        return TimeScope(
            kind=kind,
            period=period,
            duration=duration,
            start_time=start,
            end_time=end,
            confidence=0.8 if matched else 0.5,
        )

    def _match_period(self, lowered: str) -> Tuple[Optional[str], Optional[Tuple[int, int]]]:
        for phrase, offsets in self._day_offsets:
            if contains_keyword(lowered, phrase):
                return phrase, offsets
        return None, None

    def _match_duration(self, lowered: str) -> Tuple[Optional[str], Optional[int], Optional[str]]:
        for rules in self.rule_sets:
            for pattern, unit in rules.duration_patterns:
                match = pattern.search(lowered)
                if not match:
                    continue
                count = parse_count(match.group(1))
                if count:
                    return f"{count} {unit}", count, unit
        return None, None, None

    def detect_metrics(self, lowered: str) -> Tuple[list, list]:
        found = set()
        for rules in self.rule_sets:
            for metric, keywords in rules.metric_keywords.items():
                if first_keyword(lowered, keywords):
                    found.add(metric)

        activities = []
        for activity in ACTIVITY_METRICS:
            if any(first_keyword(lowered, rules.activity_keywords.get(activity, ())) for rules in self.rule_sets):
                activities.append(activity)
                found.update(ACTIVITY_METRICS[activity])

        if not found:
            found.update(DEFAULT_METRICS)
        return sort_metrics(found), activities

    def detect_units(self, lowered: str) -> Units:
        for rules in self.rule_sets:
            if first_keyword(lowered, rules.imperial_keywords):
                return Units.IMPERIAL
        return Units.METRIC
