"""Korean vocabulary; trailing particles are stripped from Hangul place names."""

from __future__ import annotations

import re

from skyroute.classifier.rules import LanguageRules
from skyroute.domain import Metric

RULES = LanguageRules(
    code="ko",
    forecast_keywords=("내일", "모레", "예보", "다음 주", "다음주", "주말", "이번 주", "앞으로"),
    historical_keywords=("어제", "그저께", "지난주", "지난 주", "지난달", "과거"),
    advice_keywords=("우산", "입어야", "챙겨", "추천", "해야 할까", "될까", "좋을까"),
    location_search_keywords=("어디", "위치", "좌표"),
    current_keywords=("오늘", "지금", "현재"),
    day_offsets={
        "오늘": (0, 0),
        "내일": (1, 1),
        "모레": (2, 2),
        "어제": (-1, -1),
        "그저께": (-2, -2),
        "이번 주": (0, 6),
        "다음 주": (1, 7),
        "다음주": (1, 7),
        "지난주": (-7, -1),
        "지난 주": (-7, -1),
    },
    weather_words=("날씨", "기상", "일기예보", "어때", "어때요", "어떤가요", "어떨까", "섭씨"),
    stopwords=("알려줘", "알려주세요", "어떻게", "얼마나", "있어", "있나요", "해줘"),
    metric_keywords={
        Metric.TEMPERATURE: ("기온", "온도", "더워", "추워", "섭씨"),
        Metric.HUMIDITY: ("습도",),
        Metric.PRECIPITATION: ("비가", "비 와", "강수", "강우", "눈이", "우산"),
        Metric.WIND: ("바람", "풍속", "태풍"),
        Metric.PRESSURE: ("기압",),
        Metric.VISIBILITY: ("가시거리", "안개"),
        Metric.UV_INDEX: ("자외선",),
        Metric.AIR_QUALITY: ("미세먼지", "공기질", "대기질", "황사"),
        Metric.CONDITIONS: ("맑음", "흐림", "천둥"),
        Metric.FEELS_LIKE: ("체감",),
        Metric.DEW_POINT: ("이슬점",),
    },
    activity_keywords={
        "surfing": ("서핑",),
        "hiking": ("등산", "하이킹"),
        "wedding": ("결혼식",),
        "sport": ("운동", "스포츠", "경기"),
        "cycling": ("자전거",),
        "beach": ("해변", "해수욕"),
        "picnic": ("소풍", "피크닉"),
        "running": ("러닝", "달리기", "조깅", "마라톤"),
    },
    imperial_keywords=("화씨",),
    duration_patterns=(
        (re.compile(r"(\d+)\s*일"), "days"),
        (re.compile(r"(\d+)\s*시간"), "hours"),
        (re.compile(r"(\d+)\s*주"), "weeks"),
    ),
    trailing_particles=("에서", "의", "에", "은", "는", "이", "가", "을", "를"),
)
