"""Service category icon tests."""
import pytest

from business.icons import (
    ICON_RENDERERS, CategoryIcon, build_service_catalog, render_category, resolve_icon
)


class TestCategoryIcons:

    def test_every_icon_has_a_renderer(self):
        assert set(ICON_RENDERERS) == set(CategoryIcon)

    @pytest.mark.parametrize("key,icon", [
        ("scissors", CategoryIcon.SCISSORS),
        (" Razor ", CategoryIcon.RAZOR),
        ("hologram", CategoryIcon.DEFAULT),
        ("", CategoryIcon.DEFAULT),
        (None, CategoryIcon.DEFAULT),
    ])
    def test_resolve(self, key, icon):
        assert resolve_icon(key) is icon

    def test_render_unknown_never_fails(self):
        assert render_category("???", "Corte").endswith("Corte")

    def test_catalog_labels(self, temp_db, shop, haircut):
        temp_db.services.create(shop.id, "Combo Pai e Filho", 80.0, 90, is_package=True)
        temp_db.services.create(shop.id, "Hidratação", 40.0, 30, category="unknown")

        catalog = {item["name"]: item for item in build_service_catalog(temp_db, shop.id)}
        assert catalog["Corte"]["icon"] == "scissors"
        assert catalog["Combo Pai e Filho"]["icon"] == "package"
        assert catalog["Hidratação"]["icon"] == "tag"
        assert catalog["Corte"]["label"].endswith("Corte")
