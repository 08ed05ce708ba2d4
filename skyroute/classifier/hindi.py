"""Hindi vocabulary. Postpositions are stopwords, so Devanagari runs need no extra rule."""

from __future__ import annotations

from skyroute.classifier.rules import LanguageRules
from skyroute.domain import Metric

RULES = LanguageRules(
    code="hi",
    forecast_keywords=("पूर्वानुमान", "अगले हफ्ते", "अगले सप्ताह", "आने वाले"),
    historical_keywords=("पिछले", "पिछले हफ्ते", "इतिहास", "बीते"),
    advice_keywords=("छाता", "चाहिए", "सलाह", "पहनना", "पहनूं"),
    location_search_keywords=("कहाँ", "कहां", "स्थान"),
    current_keywords=("आज", "अभी", "वर्तमान"),
    day_offsets={
        "आज": (0, 0),
        "अगले हफ्ते": (1, 7),
        "अगले सप्ताह": (1, 7),
        "पिछले हफ्ते": (-7, -1),
    },
    weather_words=("मौसम", "कैसा", "कैसी", "हाल"),
    stopwords=(
        "है", "में", "का", "की", "के", "क्या", "होगा", "होगी", "रहेगा", "रहेगी", "बताओ",
        "बताइए", "और", "को", "से", "पर", "मुझे",
    ),
    metric_keywords={
        Metric.TEMPERATURE: ("तापमान", "गर्मी", "ठंड"),
        Metric.HUMIDITY: ("नमी", "आर्द्रता"),
        Metric.PRECIPITATION: ("बारिश", "वर्षा", "बर्फ", "छाता"),
        Metric.WIND: ("हवा", "आंधी"),
        Metric.PRESSURE: ("दबाव",),
        Metric.VISIBILITY: ("दृश्यता", "कोहरा"),
        Metric.UV_INDEX: ("यूवी",),
        Metric.AIR_QUALITY: ("वायु गुणवत्ता", "प्रदूषण"),
        Metric.CONDITIONS: ("धूप", "बादल"),
    },
    activity_keywords={
        "surfing": ("सर्फिंग",),
        "hiking": ("ट्रेकिंग", "पैदल"),
        "wedding": ("शादी", "विवाह"),
        "sport": ("खेल",),
        "cycling": ("साइकिल",),
        "beach": ("समुद्र तट",),
        "picnic": ("पिकनिक",),
        "running": ("दौड़",),
    },
)
