"""
Inline button callback data.

Grammar (prefixes are case-insensitive):
    approve:<token>
    reject:<token>
    street:<token>:<index>
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

_INDEX_RE = re.compile(r"[0-9]+")


class CallbackAction(Enum):
    APPROVE = "approve"
    REJECT = "reject"
    SELECT_STREET = "street"


@dataclass(frozen=True)
class CallbackData:
    action: CallbackAction
    token: str
    payload: Optional[str] = None


def _valid_token(token: str) -> bool:
    return bool(token) and bool(token.strip()) and ":" not in token


def parse_callback_data(data: Optional[str]) -> Optional[CallbackData]:
    """Parse callback data from an inline button.

    Returns None for anything that does not match the grammar exactly.
    """
    if not data or not data.strip():
        return None

    prefix, sep, rest = data.partition(":")
    if not sep:
        return None

    try:
        action = CallbackAction(prefix.lower())
    except ValueError:
        return None

    if action in (CallbackAction.APPROVE, CallbackAction.REJECT):
        if not _valid_token(rest):
            return None
        return CallbackData(action, rest)

    parts = rest.split(":")
    if len(parts) != 2:
        return None
    token, index = parts
    if not _valid_token(token) or not _INDEX_RE.fullmatch(index):
        return None
    return CallbackData(action, token, index)


def build_callback_data(action: CallbackAction, token: str, index: Optional[int] = None) -> str:
    if action == CallbackAction.SELECT_STREET:
        if index is None:
            raise ValueError("Street callbacks need an option index")
        return f"{action.value}:{token}:{index}"
    return f"{action.value}:{token}"
