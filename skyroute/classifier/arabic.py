"""Arabic vocabulary and the `في <place>` rule."""

from __future__ import annotations

import re
from typing import Optional

from skyroute.classifier.rules import ExtractionRule, LanguageRules, Lexicon, Stage
from skyroute.domain import Metric

ARABIC_WORD_RE = re.compile("[ء-ۿ]+")
_PREPOSITION_RE = re.compile(r"(?:^|\s)في\s+")


def _prepositional(text: str, lexicon: Lexicon) -> Optional[str]:
    for match in _PREPOSITION_RE.finditer(text):
        words = []
        for raw in text[match.end():].split():
            if not ARABIC_WORD_RE.fullmatch(raw) or raw in lexicon.words:
                break
            words.append(raw)
            if len(words) == 3:
                break
        if words:
            return " ".join(words)
    return None


RULES = LanguageRules(
    code="ar",
    forecast_keywords=("غدا", "غداً", "بعد غد", "توقعات", "الأسبوع القادم", "القادم"),
    historical_keywords=("أمس", "الأسبوع الماضي", "الماضي", "تاريخي"),
    advice_keywords=("هل يجب", "مظلة", "أنصح", "نصيحة", "ارتداء", "ألبس"),
    location_search_keywords=("أين", "موقع", "إحداثيات"),
    current_keywords=("الآن", "اليوم", "حاليا", "حالياً"),
    day_offsets={
        "اليوم": (0, 0),
        "غدا": (1, 1),
        "غداً": (1, 1),
        "بعد غد": (2, 2),
        "أمس": (-1, -1),
        "الأسبوع القادم": (1, 7),
        "الأسبوع الماضي": (-7, -1),
    },
    weather_words=("الطقس", "طقس", "حالة", "الجو", "جو", "درجة"),
    stopwords=("كيف", "ما", "ماذا", "هو", "هي", "هل", "في", "من", "على", "عن", "إلى", "سيكون", "يكون"),
    metric_keywords={
        Metric.TEMPERATURE: ("حرارة", "الحرارة", "درجة الحرارة", "حار", "بارد"),
        Metric.HUMIDITY: ("رطوبة", "الرطوبة"),
        Metric.PRECIPITATION: ("مطر", "أمطار", "الأمطار", "ثلج", "مظلة"),
        Metric.WIND: ("رياح", "الرياح"),
        Metric.PRESSURE: ("ضغط", "الضغط"),
        Metric.VISIBILITY: ("رؤية", "الرؤية", "ضباب"),
        Metric.UV_INDEX: ("الأشعة فوق البنفسجية",),
        Metric.AIR_QUALITY: ("جودة الهواء", "تلوث", "غبار"),
        Metric.CONDITIONS: ("غائم", "مشمس", "عاصفة"),
    },
    activity_keywords={
        "surfing": ("ركوب الأمواج",),
        "hiking": ("المشي", "تسلق"),
        "wedding": ("زفاف", "عرس"),
        "sport": ("رياضة", "مباراة"),
        "cycling": ("دراجة",),
        "beach": ("شاطئ", "الشاطئ", "سباحة"),
        "picnic": ("نزهة",),
        "running": ("جري", "ركض"),
    },
    imperial_keywords=("فهرنهايت",),
    extraction_rules=(
        ExtractionRule(name="ar_preposition", stage=Stage.PREPOSITIONAL, extract=_prepositional),
    ),
)
