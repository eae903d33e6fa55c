"""Custom context processors for the field reports application.

Exposes the interface language stored in the session, the matching text
direction and whether the current user may approve reports, so the base
template can switch layout and hide review controls.
"""

from __future__ import annotations

from typing import Any, Dict

from fieldreports.permissions import user_is_reviewer


def language(request) -> Dict[str, Any]:
    lang = request.session.get('lang', 'ar')
    user = getattr(request, 'user', None)
    return {
        'lang': lang,
        'text_direction': 'rtl' if lang == 'ar' else 'ltr',
        'is_reviewer': bool(user and user.is_authenticated and user_is_reviewer(user)),
    }
