"""服务分类图标

服务的 category 是自由文本。这里把它映射到有限的图标枚举，每个图标对应
一个渲染函数；未知或为空的分类统一使用默认图标。
"""
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from database import DatabaseManager


class CategoryIcon(str, Enum):
    """分类图标"""
    SCISSORS = "scissors"
    RAZOR = "razor"
    BRUSH = "brush"
    COLOR = "color"
    SPA = "spa"
    PACKAGE = "package"
    DEFAULT = "tag"


def _badge(symbol: str) -> Callable[[str], str]:
    return lambda label: f"{symbol} {label}"


ICON_RENDERERS: Dict[CategoryIcon, Callable[[str], str]] = {
    CategoryIcon.SCISSORS: _badge("✂"),
    CategoryIcon.RAZOR: _badge("🪒"),
    CategoryIcon.BRUSH: _badge("🖌"),
    CategoryIcon.COLOR: _badge("🎨"),
    CategoryIcon.SPA: _badge("💆"),
    CategoryIcon.PACKAGE: _badge("📦"),
    CategoryIcon.DEFAULT: _badge("🏷"),
}

_missing = set(CategoryIcon) - set(ICON_RENDERERS)
if _missing:
    raise RuntimeError(f"Icon renderers missing: {sorted(i.value for i in _missing)}")


def resolve_icon(key: Optional[str]) -> CategoryIcon:
    """把分类文本解析为图标，未知分类返回默认图标。"""
    if not key:
        return CategoryIcon.DEFAULT
    try:
        return CategoryIcon(key.strip().lower())
    except ValueError:
        return CategoryIcon.DEFAULT


def render_category(key: Optional[str], label: str) -> str:
    """渲染带图标的标签。"""
    return ICON_RENDERERS[resolve_icon(key)](label)


def build_service_catalog(db: DatabaseManager, barbershop_id: int
                          ) -> List[Dict[str, Any]]:
    """门店服务列表，附带解析后的图标与显示标签。"""
    catalog = []
    for item in db.get_service_catalog(barbershop_id):
        key = item["category"]
        if item["is_package"] and not key:
            key = CategoryIcon.PACKAGE.value
        icon = resolve_icon(key)
        catalog.append({
            **item,
            "icon": icon.value,
            "label": ICON_RENDERERS[icon](item["name"]),
        })
    return catalog
