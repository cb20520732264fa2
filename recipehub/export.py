# recipehub/export.py
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from recipehub.models import Difficulty, Ingredient, Recipe

SOURCE_NAME = "I'm cooked 食譜平台"
_RULE = "=" * 50
_THIN = "─" * 50
_OTHER = "其他"

_DIFFICULTY_LABELS = {
    Difficulty.EASY: "簡單",
    Difficulty.MEDIUM: "中等",
    Difficulty.HARD: "困難",
    Difficulty.UNSET: "未設定",
}


def format_minutes(minutes: Optional[int]) -> str:
    if not minutes:
        return ""
    if minutes < 60:
        return f"{minutes} 分鐘"
    hours, mins = divmod(minutes, 60)
    if mins == 0:
        return f"{hours} 小時"
    return f"{hours} 小時 {mins} 分鐘"


def difficulty_label(difficulty) -> str:
    return _DIFFICULTY_LABELS[Difficulty.parse(difficulty)]


def _stamp(dt: Optional[datetime]) -> str:
    if not dt:
        return ""
    return dt.strftime("%Y/%m/%d %H:%M:%S")


def _section(title: str) -> List[str]:
    return [_THIN, title, _THIN]


def _grouped(ingredients: List[Ingredient]) -> Dict[str, List[Ingredient]]:
    groups: Dict[str, List[Ingredient]] = {}
    for ing in ingredients:
        groups.setdefault(ing.category or _OTHER, []).append(ing)
    return groups


def export_recipe_as_text(recipe: Recipe, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    out: List[str] = [_RULE, f"食譜：{recipe.title}", _RULE, ""]

    if recipe.user:
        out.append(f"作者：{recipe.user.username or '未知'}")
    if recipe.category:
        out.append(f"分類：{recipe.category.name}")
    if recipe.tags:
        out.append(f"標籤：{'、'.join(recipe.tags)}")
    out.append("")

    if recipe.description:
        out += _section("描述")
        out += [recipe.description, ""]

    out += _section("基本資訊")
    if recipe.servings:
        out.append(f"份量：{recipe.servings} 人份")
    if recipe.prep_time:
        out.append(f"準備時間：{format_minutes(recipe.prep_time)}")
    if recipe.cook_time:
        out.append(f"烹飪時間：{format_minutes(recipe.cook_time)}")
    out += [f"難度：{difficulty_label(recipe.difficulty)}", ""]

    if recipe.ingredients:
        out += _section("食材")
        for group, items in _grouped(recipe.ingredients).items():
            if group != _OTHER:
                out += ["", f"【{group}】"]
            for ing in items:
                line = "  • " + " ".join(p for p in (ing.name, ing.amount, ing.unit) if p)
                if ing.note:
                    line += f"（{ing.note}）"
                out.append(line)
        out.append("")

    if recipe.steps:
        out += _section("製作步驟")
        out.append("")
        for i, step in enumerate(recipe.steps, start=1):
            out.append(f"步驟 {i}")
            if step.timer_minutes:
                out.append(f"⏱️ 計時：{format_minutes(step.timer_minutes)}")
            out.append(step.instruction)
            if step.image_url:
                out.append(f"[圖片：{step.image_url}]")
            out.append("")

    if recipe.average_rating:
        out += [
            _THIN,
            f"評分：{recipe.average_rating:.1f} ⭐（{recipe.rating_count} 則評價）",
            _THIN,
        ]

    out.append("")
    if recipe.created_at:
        out.append(f"發布時間：{_stamp(recipe.created_at)}")
    if recipe.updated_at:
        out.append(f"更新時間：{_stamp(recipe.updated_at)}")

    out += ["", _RULE, f"來源：{SOURCE_NAME}", f"匯出時間：{_stamp(now)}", _RULE]
    return "\n".join(out) + "\n"


def export_recipe_as_json(recipe: Recipe, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    data = {
        "title": recipe.title,
        "description": recipe.description,
        "author": (recipe.user.username if recipe.user else None) or "未知",
        "category": recipe.category.name if recipe.category else None,
        "tags": recipe.tags,
        "servings": recipe.servings,
        "prep_time": recipe.prep_time,
        "cook_time": recipe.cook_time,
        "difficulty": recipe.difficulty.to_db(),
        "ingredients": [i.model_dump(exclude_none=True) for i in recipe.ingredients],
        "steps": [s.model_dump(exclude_none=True) for s in recipe.steps],
        "image_url": recipe.image_url,
        "average_rating": recipe.average_rating,
        "rating_count": recipe.rating_count,
        "created_at": recipe.created_at.isoformat() if recipe.created_at else None,
        "updated_at": recipe.updated_at.isoformat() if recipe.updated_at else None,
        "exported_at": now.isoformat(),
        "source": SOURCE_NAME,
    }
    return json.dumps(data, ensure_ascii=False, indent=2)
