"""Prompt construction and response cleanup for the language-model query parser."""

from __future__ import annotations

import json
from typing import Optional

SYSTEM_PROMPT = """You extract structured fields from a weather question.
Reply with ONE JSON object and nothing else, using exactly these keys:
{
  "location": string or null,          // place name as written by the user
  "latitude": number or null,
  "longitude": number or null,
  "location_confidence": number 0-1,
  "intent": one of CURRENT_WEATHER, WEATHER_FORECAST, HISTORICAL_WEATHER, WEATHER_ADVICE, LOCATION_SEARCH,
  "intent_confidence": number 0-1,
  "time_period": string or null,       // e.g. "tomorrow", "next 3 days"
  "time_confidence": number 0-1,
  "metrics": list of temperature, humidity, precipitation, wind, pressure, visibility,
             uv_index, air_quality, conditions, feels_like, dew_point,
  "language": BCP-47 tag such as en, zh-TW, zh-CN, ja, ko, ar, hi,
  "confidence": number 0-1
}
Never invent a location the user did not mention. Use null when unsure."""


def build_parser_messages(text: str, context: Optional[str] = None) -> list[dict]:
    """System + user messages for one parse request."""
    user = {"query": text}
    if context:
        user["context"] = context
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(user, ensure_ascii=False)},
    ]


def strip_markdown_fences(text: str) -> str:
    """Remove surrounding Markdown code fences from text."""
    if not text:
        return text
    t = text.strip()
    if not t.startswith("```"):
        return t
    lines = t.splitlines()
    if lines and lines[0].strip().startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def extract_json_object(text: str) -> str:
    """The outermost `{...}` span of a model reply (models sometimes add prose around it)."""
    t = strip_markdown_fences(text or "")
    start = t.find("{")
    end = t.rfind("}")
    if start == -1 or end <= start:
        return t
    return t[start : end + 1]
