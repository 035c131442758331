from enum import Enum
from typing import Optional


class Mode(str, Enum):
    GROUNDING = "grounding"
    DISCIPLINE = "discipline"
    RELATIONSHIPS = "relationships"
    BUSINESS = "business"
    PURPOSE = "purpose"


DEFAULT_MODE = Mode.GROUNDING


def coerce_mode(value) -> Optional[Mode]:
    """Return the Mode for `value`, or None when it is not a known mode."""
    if isinstance(value, Mode):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Mode(value.strip().lower())
    except ValueError:
        return None
