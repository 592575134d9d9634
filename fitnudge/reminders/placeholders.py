import re
from datetime import datetime
from typing import Dict, Mapping, Optional

from fitnudge.utils.timezone import to_local, format_clock
from .constants import MEAL_LABELS

PLACEHOLDER = re.compile(r"\{(\w+)\}")


def build_context(prefs, now: datetime, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Values for {name}, {currentTime} and any type-specific tokens."""
    first_name = getattr(prefs, "first_name", None)
    context = {
        "name": first_name or "there",
        "currentTime": format_clock(to_local(now, getattr(prefs, "timezone", None))),
    }
    if extra:
        context.update({k: str(v) for k, v in extra.items()})
    return context


def meal_context(slot: str) -> Dict[str, str]:
    label, emoji = MEAL_LABELS.get(slot, (slot, ""))
    return {"mealType": slot, "mealLabel": label, "mealEmoji": emoji}


def substitute(template: Optional[str], context: Mapping[str, str]) -> str:
    """Replace known {tokens}; unknown ones are left verbatim."""
    if not template:
        return ""
    return PLACEHOLDER.sub(lambda m: context.get(m.group(1), m.group(0)), template)
