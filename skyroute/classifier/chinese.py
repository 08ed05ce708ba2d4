"""Traditional and Simplified Chinese vocabulary and the `在<place>` rule."""

from __future__ import annotations

import re
from typing import Optional

from skyroute.classifier.rules import CJK_CHARS, ExtractionRule, LanguageRules, Lexicon, Stage
from skyroute.domain import Metric

_NUMBER = r"(\d+|[一二兩两三四五六七八九十])"
_LEADING_RUN_RE = re.compile(f"^[{CJK_CHARS}]+")


def _prepositional(text: str, lexicon: Lexicon) -> Optional[str]:
    for match in re.finditer("在", text):
        rest = lexicon.cut_terms(text[match.end():]).lstrip()
        run = _LEADING_RUN_RE.match(rest)
        if not run:
            continue
        candidate = run.group(0)
        if len(candidate) >= 2 and not lexicon.denies(candidate):
            return candidate
    return None


RULES = LanguageRules(
    code="zh",
    forecast_keywords=(
        "明天", "後天", "后天", "大後天", "大后天", "預報", "预报", "未來", "未来", "下週", "下周",
        "下星期", "週末", "周末", "之後", "之后", "接下來", "接下来", "本週", "本周", "這週", "这周",
        "將會", "将会",
    ),
    historical_keywords=(
        "昨天", "前天", "上週", "上周", "上星期", "上個月", "上个月", "去年", "歷史", "历史",
        "過去", "过去", "以前", "之前",
    ),
    advice_keywords=(
        "適合", "适合", "建議", "建议", "要不要", "需不需要", "應該", "应该", "帶傘", "带伞",
        "穿什麼", "穿什么", "該穿", "该穿", "推薦", "推荐",
    ),
    location_search_keywords=(
        "在哪", "在哪裡", "在哪里", "哪裡", "哪里", "位置", "座標", "坐标", "經緯度", "经纬度",
    ),
    current_keywords=("現在", "现在", "目前", "今天", "此刻", "當前", "当前", "今晚"),
    day_offsets={
        "今天": (0, 0),
        "今晚": (0, 0),
        "明天": (1, 1),
        "後天": (2, 2),
        "后天": (2, 2),
        "大後天": (3, 3),
        "大后天": (3, 3),
        "昨天": (-1, -1),
        "前天": (-2, -2),
        "本週": (0, 6),
        "本周": (0, 6),
        "這週": (0, 6),
        "这周": (0, 6),
        "下週": (1, 7),
        "下周": (1, 7),
        "下星期": (1, 7),
        "上週": (-7, -1),
        "上周": (-7, -1),
        "上星期": (-7, -1),
    },
    weather_words=(
        "天氣", "天气", "天氣預報", "天气预报", "氣象", "气象", "氣候", "气候", "狀況", "状况",
        "情況", "情况", "條件", "条件", "資訊", "资讯", "信息", "高度", "程度", "指數", "指数",
        "海浪", "浪高", "攝氏", "摄氏", "好不好", "怎麼", "怎么",
    ),
    stopwords=(
        "請問", "请问", "幫我", "帮我", "幫我查", "帮我查", "查詢", "查询", "告訴我", "告诉我",
        "我想知道", "怎麼樣", "怎么样", "如何", "怎樣", "怎样", "多少", "幾度", "几度", "什麼",
        "什么", "可以", "一下", "會不會", "会不会", "是否", "還是", "还是", "時候", "时候",
    ),
    metric_keywords={
        Metric.TEMPERATURE: ("溫度", "温度", "氣溫", "气温", "熱", "热", "冷", "幾度", "几度", "攝氏", "摄氏"),
        Metric.HUMIDITY: ("濕度", "湿度", "潮濕", "潮湿", "悶熱", "闷热"),
        Metric.PRECIPITATION: ("下雨", "降雨", "雨量", "降雨量", "降水", "雨", "雪", "下雪", "帶傘", "带伞"),
        Metric.WIND: ("風", "风", "風速", "风速", "颱風", "台风", "陣風", "阵风"),
        Metric.PRESSURE: ("氣壓", "气压"),
        Metric.VISIBILITY: ("能見度", "能见度", "霧", "雾"),
        Metric.UV_INDEX: ("紫外線", "紫外线", "曬", "晒", "防曬", "防晒"),
        Metric.AIR_QUALITY: ("空氣品質", "空气质量", "空氣質量", "空氣", "空气", "AQI", "PM2.5", "霾", "花粉"),
        Metric.CONDITIONS: ("天氣狀況", "天气状况", "晴", "陰", "阴", "多雲", "多云", "雷"),
        Metric.FEELS_LIKE: ("體感", "体感"),
        Metric.DEW_POINT: ("露點", "露点"),
    },
    activity_keywords={
        "surfing": ("衝浪", "冲浪"),
        "hiking": ("登山", "爬山", "健行", "徒步"),
        "wedding": ("婚禮", "婚礼", "婚宴", "結婚", "结婚"),
        "sport": ("運動", "运动", "比賽", "比赛", "球賽", "球赛", "打球"),
        "cycling": ("騎車", "骑车", "單車", "单车", "自行車", "自行车", "腳踏車", "脚踏车"),
        "beach": ("海灘", "海滩", "沙灘", "沙滩", "游泳", "海邊", "海边"),
        "picnic": ("野餐", "烤肉"),
        "running": ("跑步", "慢跑", "馬拉松", "马拉松"),
    },
    imperial_keywords=("華氏", "华氏"),
    duration_patterns=(
        (re.compile(_NUMBER + r"\s*(?:天|日)(?!本)"), "days"),
        (re.compile(_NUMBER + r"\s*(?:個|个)?\s*(?:小時|小时)"), "hours"),
        (re.compile(_NUMBER + r"\s*(?:個|个)?\s*(?:週|周|星期)"), "weeks"),
    ),
    separators="的了嗎吗呢會会是與与及或還还很也就把被給给讓让從从到在請请我你想查要",
    extraction_rules=(
        ExtractionRule(name="zh_preposition", stage=Stage.PREPOSITIONAL, extract=_prepositional),
    ),
)
