"""Keyword rules: the deterministic half of categorization."""

from typing import Optional

from financely.models.household import Category, Rule


def suggest_category(
    description: str,
    rules: list[Rule],
    categories: list[Category],
) -> Optional[str]:
    """
    Category id of the first rule whose keyword occurs in `description`.

    Matching is case-insensitive substring, in rule order. Returns None if
    nothing matches or the matching rule points at a category that no
    longer exists.
    """
    text = description.lower()
    category_ids = {category.id for category in categories}

    for rule in rules:
        keyword = rule.keyword.strip().lower()
        if keyword and keyword in text:
            return rule.category_id if rule.category_id in category_ids else None
    return None
