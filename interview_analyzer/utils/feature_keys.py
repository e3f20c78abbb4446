"""Normalization of feature names into the key used for name-based joins."""

from typing import Optional


def normalize_feature_key(feature_name: Optional[str]) -> str:
    """
    Fold a feature name into its join key.

    Whitespace runs collapse to one space, the ends are trimmed and the
    result is casefolded, so "Slack  Integration " and "slack integration"
    share a key while both keep their own display name.

    Returns an empty string for None or blank input.
    """
    if not feature_name:
        return ""
    return " ".join(str(feature_name).split()).casefold()


def clean_feature_name(feature_name: Optional[str]) -> str:
    """Trim a display name without changing its case."""
    if not feature_name:
        return ""
    return " ".join(str(feature_name).split())
