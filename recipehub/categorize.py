# recipehub/categorize.py
from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence

from recipehub.models import Category, CategoryMatch

# keyed by category display name, mirrors the seeded `categories` table
CATEGORY_KEYWORDS = {
    "主菜": [
        "主菜", "主餐", "正餐", "配飯", "下飯", "肉類", "魚", "雞肉", "豬肉", "牛肉",
        "羊肉", "魚肉", "海鮮", "炒飯", "炒麵", "義大利麵", "披薩", "漢堡", "三明治",
        "排", "燉", "燒", "烤", "炸", "蒸", "紅燒", "糖醋",
    ],
    "湯品": [
        "湯", "湯品", "湯類", "燉湯", "煲湯", "清湯", "濃湯", "雞湯", "排骨湯",
        "魚湯", "蔬菜湯", "番茄湯", "玉米湯", "蘑菇湯", "紫菜湯", "酸辣湯",
        "羅宋湯", "味噌湯", "高湯", "羹", "粥",
    ],
    "甜點": [
        "甜點", "點心", "蛋糕", "餅乾", "布丁", "布蕾", "冰淇淋", "優格",
        "馬芬", "鬆餅", "可麗餅", "提拉米蘇", "起司蛋糕", "巧克力", "糖果",
        "馬卡龍", "泡芙", "塔", "派", "慕斯", "舒芙蕾",
    ],
    "飲料": [
        "飲料", "飲品", "茶", "咖啡", "果汁", "奶茶", "拿鐵", "卡布奇諾",
        "氣泡水", "蘇打", "汽水", "可樂", "檸檬汁", "柳橙汁", "葡萄汁",
        "冰沙", "奶昔", "調酒", "雞尾酒", "茶飲",
    ],
    "開胃菜": [
        "開胃菜", "前菜", "小菜", "配菜", "涼拌", "沙拉", "生菜", "小食",
        "小點", "下酒菜", "冷盤", "拼盤",
    ],
    "早餐": [
        "早餐", "早點", "蛋", "煎蛋", "炒蛋", "水煮蛋", "荷包蛋", "蛋餅",
        "吐司", "三明治", "貝果", "鬆餅", "法式吐司", "燕麥", "麥片",
        "豆漿", "油條", "包子", "饅頭", "燒餅", "飯糰",
    ],
    "午餐": ["午餐", "便當", "飯盒", "簡餐", "輕食"],
    "晚餐": ["晚餐", "晚飯", "正餐"],
    "點心": ["點心", "零食", "小食", "宵夜", "茶點", "餅乾", "蛋糕", "派"],
    "素食": [
        "素食", "蔬食", "全素", "蛋奶素", "純素", "蔬菜", "豆腐", "豆製品",
        "素肉", "素雞", "素魚", "菇類", "蘑菇", "香菇", "金針菇",
    ],
    "快速料理": [
        "快速", "簡單", "簡易", "方便", "懶人", "一鍋", "快手", "快炒",
        "10分鐘", "15分鐘", "20分鐘", "30分鐘", "電鍋", "微波", "即食",
    ],
    "健康料理": [
        "健康", "減脂", "低卡", "低熱量", "低脂", "高蛋白", "營養", "養生",
        "無糖", "少油", "少鹽", "清淡", "有機", "天然",
    ],
}


def recipe_text(title: str, description: Optional[str], tags: Iterable[str]) -> str:
    return f"{title or ''} {description or ''} {' '.join(tags or [])}".lower()


def keyword_hits(text: str, keywords: Iterable[str]) -> int:
    """Number of distinct keywords found anywhere in `text` (substring, not word match)."""
    lowered = text.lower()
    return sum(1 for kw in set(k.lower() for k in keywords) if kw and kw in lowered)


def score_categories(
    title: str,
    description: Optional[str],
    tags: Sequence[str],
    categories: Sequence[Category],
    keywords: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[CategoryMatch]:
    """
    All categories with at least one keyword hit, best first.
    Ties keep the order `categories` arrived in.
    """
    table = CATEGORY_KEYWORDS if keywords is None else keywords
    text = recipe_text(title, description, tags)

    matches: List[CategoryMatch] = []
    for cat in categories:
        kws = table.get(cat.name) or []
        if not kws:
            continue
        s = keyword_hits(text, kws)
        if s > 0:
            matches.append(CategoryMatch(category_id=cat.id, category_name=cat.name, score=s))
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches


def category_suggestions(
    title: str,
    description: Optional[str],
    tags: Sequence[str],
    categories: Sequence[Category],
    limit: int = 3,
    keywords: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[CategoryMatch]:
    return score_categories(title, description, tags, categories, keywords)[: max(0, int(limit))]


def auto_categorize(
    title: str,
    description: Optional[str],
    tags: Sequence[str],
    categories: Sequence[Category],
    keywords: Optional[Mapping[str, Sequence[str]]] = None,
) -> Optional[str]:
    ranked = score_categories(title, description, tags, categories, keywords)
    return ranked[0].category_id if ranked else None
