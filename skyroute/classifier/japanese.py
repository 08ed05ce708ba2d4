"""Japanese vocabulary. Hiragana already splits runs, so no extra rules are needed."""

from __future__ import annotations

import re

from skyroute.classifier.rules import LanguageRules
from skyroute.domain import Metric

_NUMBER = r"(\d+|[一二三四五六七八九十])"

RULES = LanguageRules(
    code="ja",
    forecast_keywords=("明日", "あした", "明後日", "予報", "来週", "週末", "今週", "これから", "今後"),
    historical_keywords=("昨日", "きのう", "一昨日", "先週", "先月", "去年", "過去"),
    advice_keywords=("傘", "持って", "服装", "着る", "何を着", "べき", "おすすめ", "大丈夫"),
    location_search_keywords=("どこ", "場所", "位置", "座標"),
    current_keywords=("今日", "きょう", "現在", "いま", "今"),
    day_offsets={
        "今日": (0, 0),
        "きょう": (0, 0),
        "明日": (1, 1),
        "あした": (1, 1),
        "明後日": (2, 2),
        "昨日": (-1, -1),
        "きのう": (-1, -1),
        "一昨日": (-2, -2),
        "今週": (0, 6),
        "来週": (1, 7),
        "先週": (-7, -1),
    },
    weather_words=("天気", "天気予報", "気象", "様子", "状況", "具合", "摂氏", "何度"),
    stopwords=("教えて", "ください", "どう", "どうですか", "ですか"),
    metric_keywords={
        Metric.TEMPERATURE: ("気温", "温度", "暑", "寒", "何度", "摂氏"),
        Metric.HUMIDITY: ("湿度", "蒸し暑"),
        Metric.PRECIPITATION: ("雨", "雪", "降水", "降水確率", "傘"),
        Metric.WIND: ("風", "風速", "台風"),
        Metric.PRESSURE: ("気圧",),
        Metric.VISIBILITY: ("視界", "霧"),
        Metric.UV_INDEX: ("紫外線", "日焼け"),
        Metric.AIR_QUALITY: ("大気", "花粉", "黄砂"),
        Metric.CONDITIONS: ("晴れ", "曇り", "雷"),
        Metric.FEELS_LIKE: ("体感",),
        Metric.DEW_POINT: ("露点",),
    },
    activity_keywords={
        "surfing": ("サーフィン",),
        "hiking": ("ハイキング", "登山", "トレッキング"),
        "wedding": ("結婚式",),
        "sport": ("スポーツ", "運動", "試合"),
        "cycling": ("サイクリング", "自転車"),
        "beach": ("ビーチ", "海水浴"),
        "picnic": ("ピクニック", "バーベキュー"),
        "running": ("ランニング", "ジョギング", "マラソン"),
    },
    imperial_keywords=("華氏",),
    duration_patterns=(
        (re.compile(_NUMBER + r"\s*日間"), "days"),
        (re.compile(_NUMBER + r"\s*時間"), "hours"),
        (re.compile(_NUMBER + r"\s*週間"), "weeks"),
    ),
)
