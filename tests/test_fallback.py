import asyncio
from datetime import datetime, timezone
import unittest

from skyroute.classifier import ConfidenceClassifier
from skyroute.domain import Intent, Metric, ParsingSource, TimeKind
from skyroute.errors import ErrorCode, ParserTransportError, QueryValidationError
from skyroute.fallback import FallbackOrchestrator
from skyroute.llm_parser import ParserOutput

FIXED_NOW = datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)


def _classifier():
    return ConfidenceClassifier(clock=lambda: FIXED_NOW)


class StubParser:
    """Async parser returning a canned reply (or raising it)."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    async def parse(self, text, context=None):
        self.calls.append((text, context))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class SlowParser:
    async def parse(self, text, context=None):
        await asyncio.sleep(5)


class SyncParser:
    def parse(self, text, context=None):
        return {"intent": "CURRENT_WEATHER", "intent_confidence": 0.9, "location": "Lima", "location_confidence": 0.7, "confidence": 0.7}


def _full_reply(**overrides):
    data = dict(
        location="Lisbon",
        location_confidence=0.9,
        intent="WEATHER_FORECAST",
        intent_confidence=0.9,
        time_period="tomorrow",
        time_confidence=0.9,
        metrics=["wind"],
        language="en",
        confidence=0.85,
    )
    data.update(overrides)
    return ParserOutput.model_validate(data)


class TestValidation(unittest.TestCase):
    def setUp(self):
        self.orchestrator = FallbackOrchestrator(_classifier(), max_query_chars=50, max_word_chars=10, max_context_chars=20)

    def test_rejections(self):
        cases = [
            ("", None),
            ("   ", None),
            ("x " * 30, None),
            ("weather in Supercalifragilistic", None),
            ("weather", "a" * 21),
            ("<script>alert(1)</script>", None),
            ("weather", "javascript:go()"),
        ]
        for text, context in cases:
            with self.subTest(text=text, context=context):
                with self.assertRaises(QueryValidationError) as ctx:
                    self.orchestrator.validate(text, context)
                self.assertEqual(ctx.exception.code, ErrorCode.VALIDATION_ERROR)

    def test_accepts_ordinary_query(self):
        self.assertIsNone(self.orchestrator.validate("Rain in Oslo?", "metric"))


class TestOrchestrator(unittest.IsolatedAsyncioTestCase):
    async def test_without_parser_result_is_marked_degraded(self):
        orchestrator = FallbackOrchestrator(_classifier())
        parsed = await orchestrator.parse("沖繩明天天氣預報 衝浪條件 海浪高度 風速")
        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_FALLBACK)
        self.assertEqual(parsed.location.name, "沖繩")
        self.assertEqual(orchestrator.threshold, 0.3)
        self.assertTrue(orchestrator.is_degraded(parsed))

    async def test_confident_rules_skip_parser(self):
        parser = StubParser(_full_reply())
        orchestrator = FallbackOrchestrator(_classifier(), parser)
        parsed = await orchestrator.parse("Taipei weather today")
        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_ONLY)
        self.assertEqual(parser.calls, [])
        self.assertFalse(orchestrator.is_degraded(parsed))

    async def test_parser_wins_every_component(self):
        parser = StubParser(_full_reply())
        orchestrator = FallbackOrchestrator(_classifier(), parser)
        parsed = await orchestrator.parse("weather please", "metric")

        self.assertEqual(parser.calls, [("weather please", "metric")])
        self.assertEqual(parsed.parsing_source, ParsingSource.FALLBACK_ONLY)
        self.assertEqual(parsed.location.name, "Lisbon")
        self.assertEqual(parsed.location.source, "parser")
        self.assertEqual(parsed.intent.primary, Intent.FORECAST)
        self.assertEqual(parsed.time_scope.kind, TimeKind.FORECAST)
        self.assertEqual(parsed.time_scope.period, "tomorrow")
        self.assertEqual(parsed.time_scope.confidence, 0.9)
        self.assertEqual(parsed.overall_confidence, 0.85)
        self.assertIn(Metric.WIND, parsed.metrics)
        self.assertIn(Metric.TEMPERATURE, parsed.metrics)

    async def test_partial_merge_keeps_rule_components(self):
        reply = _full_reply(intent="CURRENT_WEATHER", intent_confidence=0.2, time_confidence=0.1, confidence=0.3)
        orchestrator = FallbackOrchestrator(_classifier(), StubParser(reply))
        parsed = await orchestrator.parse("weather please")

        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_WITH_FALLBACK)
        self.assertEqual(parsed.location.name, "Lisbon")
        self.assertEqual(parsed.intent.primary, Intent.CURRENT)
        self.assertEqual(parsed.intent.confidence, 0.5)
        # the rule confidence is kept when it is higher
        self.assertEqual(parsed.overall_confidence, 0.4)

    async def test_parser_coordinates_are_kept(self):
        reply = _full_reply(location=None, latitude=25.03, longitude=121.56)
        orchestrator = FallbackOrchestrator(_classifier(), StubParser(reply))
        parsed = await orchestrator.parse("weather please")
        self.assertEqual(parsed.location.coordinates, (25.03, 121.56))
        self.assertTrue(parsed.location.found)

    async def test_unsupported_language_is_ignored(self):
        orchestrator = FallbackOrchestrator(_classifier(), StubParser(_full_reply(language="xx")))
        parsed = await orchestrator.parse("weather please")
        self.assertEqual(parsed.language, "en")

    async def test_parser_error_falls_back(self):
        orchestrator = FallbackOrchestrator(_classifier(), StubParser(ParserTransportError("down")))
        parsed = await orchestrator.parse("weather please")
        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_FALLBACK_ON_ERROR)
        self.assertTrue(orchestrator.is_degraded(parsed))

    async def test_unexpected_exception_falls_back(self):
        orchestrator = FallbackOrchestrator(_classifier(), StubParser(RuntimeError("bug")))
        with self.assertLogs("skyroute.fallback", level="ERROR"):
            parsed = await orchestrator.parse("weather please")
        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_FALLBACK_ON_ERROR)

    async def test_timeout_falls_back(self):
        orchestrator = FallbackOrchestrator(_classifier(), SlowParser(), timeout_seconds=0.05)
        parsed = await orchestrator.parse("weather please")
        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_FALLBACK_ON_ERROR)

    async def test_invalid_reply_falls_back(self):
        orchestrator = FallbackOrchestrator(_classifier(), StubParser("not json"))
        parsed = await orchestrator.parse("weather please")
        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_FALLBACK_ON_ERROR)

    async def test_sync_parser_dict_reply(self):
        orchestrator = FallbackOrchestrator(_classifier(), SyncParser())
        parsed = await orchestrator.parse("weather please")
        self.assertEqual(parsed.location.name, "Lima")
        self.assertEqual(parsed.parsing_source, ParsingSource.RULES_WITH_FALLBACK)

    async def test_validation_runs_before_parsing(self):
        orchestrator = FallbackOrchestrator(_classifier())
        with self.assertRaises(QueryValidationError):
            await orchestrator.parse("   ")


class TestFromSettings(unittest.TestCase):
    def test_thresholds_come_from_settings(self):
        class S:
            parser_threshold = 0.6
            parser_threshold_without_llm = 0.2
            parser_timeout_seconds = 1.0
            max_query_chars = 100
            max_word_chars = 20
            max_context_chars = 50

        orchestrator = FallbackOrchestrator.from_settings(S(), parser=StubParser(_full_reply()))
        self.assertEqual(orchestrator.threshold, 0.6)
        self.assertEqual(orchestrator.max_query_chars, 100)
        orchestrator.parser = None
        self.assertEqual(orchestrator.threshold, 0.2)


if __name__ == "__main__":
    unittest.main()
