"""Input validation plus the rules-first, language-model-second parsing strategy.

The rule classifier always runs. The external parser is consulted only when
one is configured and the rule result is below the confidence threshold; its
answer is merged component by component, and any failure (timeout, transport,
malformed reply) quietly falls back to the rule result with the source set to
``rules_fallback_on_error``.
"""

from __future__ import annotations

import asyncio
import inspect
import re
from typing import Any, Optional

from pydantic import ValidationError

from skyroute.classifier import ConfidenceClassifier
from skyroute.domain import (
    SUPPORTED_LANGUAGES,
    Intent,
    IntentInfo,
    LocationInfo,
    ParsedQuery,
    ParsingSource,
    TimeKind,
    sort_metrics,
)
from skyroute.errors import ParserError, ParserResponseError, ParserTimeoutError, QueryValidationError
from skyroute.llm_parser import ParserOutput, QueryParser
from utils.logging_utils import get_tagged_logger, preview_text

logger = get_tagged_logger(__name__, tag="fallback")

_SCRIPT_PATTERNS = re.compile(r"<script|javascript:|eval\(|document\.", re.IGNORECASE)

DEGRADED_SOURCES = frozenset({ParsingSource.RULES_FALLBACK, ParsingSource.RULES_FALLBACK_ON_ERROR})


def _kind_for_intent(intent: Intent) -> TimeKind:
    if intent == Intent.FORECAST:
        return TimeKind.FORECAST
    if intent == Intent.HISTORICAL:
        return TimeKind.HISTORICAL
    return TimeKind.CURRENT


class FallbackOrchestrator:
    def __init__(
        self,
        classifier: Optional[ConfidenceClassifier] = None,
        parser: Optional[QueryParser] = None,
        *,
        threshold: float = 0.5,
        threshold_without_parser: float = 0.3,
        timeout_seconds: float = 2.0,
        max_query_chars: int = 1000,
        max_word_chars: int = 200,
        max_context_chars: int = 500,
    ) -> None:
        self.classifier = classifier or ConfidenceClassifier()
        self.parser = parser
        self._threshold = threshold
        self._threshold_without_parser = threshold_without_parser
        self.timeout_seconds = timeout_seconds
        self.max_query_chars = max_query_chars
        self.max_word_chars = max_word_chars
        self.max_context_chars = max_context_chars

    @classmethod
    def from_settings(cls, settings, *, classifier=None, parser=None) -> "FallbackOrchestrator":
        return cls(
            classifier,
            parser,
            threshold=settings.parser_threshold,
            threshold_without_parser=settings.parser_threshold_without_llm,
            timeout_seconds=settings.parser_timeout_seconds,
            max_query_chars=settings.max_query_chars,
            max_word_chars=settings.max_word_chars,
            max_context_chars=settings.max_context_chars,
        )

    @property
    def threshold(self) -> float:
        return self._threshold if self.parser is not None else self._threshold_without_parser

    def validate(self, text: Optional[str], context: Optional[str] = None) -> None:
        """Raise QueryValidationError for input that must not be parsed."""
        if text is None or not text.strip():
            raise QueryValidationError("Query must not be empty", details="The query text was empty or whitespace only")
        if len(text) > self.max_query_chars:
            raise QueryValidationError(
                "Query is too long",
                details=f"{len(text)} characters; the limit is {self.max_query_chars}",
            )
        longest = max((len(word) for word in text.split()), default=0)
        if longest > self.max_word_chars:
            raise QueryValidationError(
                "Query contains an overly long word",
                details=f"A word of {longest} characters exceeds the limit of {self.max_word_chars}",
            )
        if context is not None and len(context) > self.max_context_chars:
            raise QueryValidationError(
                "Context is too long",
                details=f"{len(context)} characters; the limit is {self.max_context_chars}",
            )
        for value in (text, context or ""):
            if _SCRIPT_PATTERNS.search(value):
                raise QueryValidationError("Query contains disallowed content", details="Script-like content is not accepted")

    async def parse(self, text: str, context: Optional[str] = None) -> ParsedQuery:
        self.validate(text, context)
        rule_result = self.classifier.classify(text, context)

        if self.parser is None:
            logger.debug(
                "No parser configured; using degraded rule result",
                extra={"confidence": rule_result.overall_confidence},
            )
            return rule_result.model_copy(update={"parsing_source": ParsingSource.RULES_FALLBACK})

        if rule_result.overall_confidence >= self.threshold:
            return rule_result.model_copy(update={"parsing_source": ParsingSource.RULES_ONLY})

        try:
            output = await self._call_parser(text, context)
        except ParserError as exc:
            logger.warning(
                "Parser failed; keeping rule result",
                extra={"query": preview_text(text), "error_type": type(exc).__name__, "error": str(exc)},
            )
            return rule_result.model_copy(update={"parsing_source": ParsingSource.RULES_FALLBACK_ON_ERROR})
        except Exception:
            logger.exception("Unexpected parser failure; keeping rule result", extra={"query": preview_text(text)})
            return rule_result.model_copy(update={"parsing_source": ParsingSource.RULES_FALLBACK_ON_ERROR})

        merged = self.merge(rule_result, output)
        logger.info(
            "Merged parser result",
            extra={
                "query": preview_text(text),
                "parsing_source": merged.parsing_source.value,
                "rule_confidence": rule_result.overall_confidence,
                "parser_confidence": output.confidence,
            },
        )
        return merged

    def is_degraded(self, parsed: ParsedQuery) -> bool:
        return parsed.parsing_source in DEGRADED_SOURCES or parsed.overall_confidence < self.threshold

    async def _call_parser(self, text: str, context: Optional[str]) -> ParserOutput:
        parse = self.parser.parse
        if inspect.iscoroutinefunction(parse):
            pending = parse(text, context)
        else:
            pending = asyncio.to_thread(parse, text, context)
        try:
            result = await asyncio.wait_for(pending, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise ParserTimeoutError(f"Parser did not answer within {self.timeout_seconds}s") from exc
        return self._coerce_output(result)

    @staticmethod
    def _coerce_output(result: Any) -> ParserOutput:
        if isinstance(result, ParserOutput):
            return result
        try:
            if isinstance(result, dict):
                return ParserOutput.model_validate(result)
            if isinstance(result, (str, bytes)):
                return ParserOutput.model_validate_json(result)
        except ValidationError as exc:
            raise ParserResponseError(f"Invalid parser reply: {exc.error_count()} validation error(s)") from exc
        raise ParserResponseError(f"Unsupported parser reply type: {type(result).__name__}")

    def merge(self, rule: ParsedQuery, output: ParserOutput) -> ParsedQuery:
        """Take each component from whichever side is strictly more confident."""
        taken = 0

        location = rule.location
        if output.location_confidence > rule.location.confidence and (output.location or output.coordinates):
            location = LocationInfo(
                name=output.location,
                coordinates=output.coordinates,
                confidence=output.location_confidence,
                source="parser",
            )
            taken += 1

        intent = rule.intent
        if output.intent_confidence > rule.intent.confidence:
            intent = IntentInfo(primary=output.intent, confidence=output.intent_confidence)
            taken += 1

        if output.time_confidence > rule.time_scope.confidence:
            scope = self.classifier.build_time_scope((output.time_period or "").lower(), intent)
            time_scope = scope.model_copy(
                update={"period": output.time_period or scope.period, "confidence": output.time_confidence}
            )
            taken += 1
        else:
            time_scope = rule.time_scope.model_copy(update={"kind": _kind_for_intent(intent.primary)})

        language = output.language if output.language in SUPPORTED_LANGUAGES else rule.language
        source = ParsingSource.FALLBACK_ONLY if taken == 3 else ParsingSource.RULES_WITH_FALLBACK

        return rule.model_copy(
            update={
                "location": location,
                "intent": intent,
                "time_scope": time_scope,
                "metrics": sort_metrics(set(rule.metrics) | set(output.metrics)),
                "language": language,
                "overall_confidence": max(rule.overall_confidence, output.confidence),
                "parsing_source": source,
            }
        )
