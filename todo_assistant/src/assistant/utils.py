from __future__ import annotations

import json
from typing import Any, Iterable, Iterator, List, Optional


# PUBLIC_INTERFACE
def clean_text(value: Any) -> Optional[str]:
    """
    Normalize user or model supplied text.

    Returns:
        The stripped string, or None when the value is not a string or is blank.
    """
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def clean_texts(values: Optional[Iterable[Any]]) -> Iterator[str]:
    """Yield the non-blank, stripped entries of values in order."""
    for value in values or ():
        text = clean_text(value)
        if text is not None:
            yield text


# PUBLIC_INTERFACE
def dump_result(result: List[str]) -> str:
    """Serialize a tool result list the way it is stored in tool messages."""
    return json.dumps(result, ensure_ascii=False)
