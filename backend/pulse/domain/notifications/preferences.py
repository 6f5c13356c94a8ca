"""Per-user category preference filter."""
from typing import Optional

from pulse.domain.notifications.models import Category, TokenBundle


def default_preferences() -> dict[str, bool]:
    """Preferences for a new bundle: every user-switchable category enabled."""
    return {c.value: True for c in Category.filterable()}


def is_enabled(bundle: Optional[TokenBundle], category: Category) -> bool:
    """Fail-open: only an explicit False disables a category."""
    if bundle is None or category is Category.GENERAL:
        return True
    return bundle.preferences.get(category.value, True) is not False
