"""Template filters for the field report screens."""

from __future__ import annotations

from typing import Any

from django import template

register = template.Library()

_ARABIC_DIGITS = str.maketrans('0123456789', '٠١٢٣٤٥٦٧٨٩')


@register.filter
def get(value, key):
    """Return ``value[key]`` for dictionaries and records in templates.

    Usage::

        {{ record|get:"المسجد" }}

    Sheet columns have Arabic names which the template language cannot reach
    with dotted lookups.  Missing keys render as an empty string.
    """
    if hasattr(value, 'get'):
        result = value.get(key, '')
        return '' if result is None else result
    return ''


@register.filter
def score(value: Any) -> str:
    """Format a mean rating with one decimal."""

    try:
        return f"{float(value):.1f}"
    except (TypeError, ValueError):
        return '0.0'


@register.filter
def arabic_digits(value: Any) -> str:
    """Render Western digits as Arabic-Indic digits."""

    if value is None:
        return ''
    return str(value).translate(_ARABIC_DIGITS)
