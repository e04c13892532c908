"""
Display-label helpers for integer enumerations.

Campaign statuses, loot statuses, difficulty levels and item attributes
are stored as integers; forms and JSON payloads show them as words.
These helpers turn enum member names into labels and back again.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import TypeVar

E = TypeVar("E", bound=Enum)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_label(member: Enum) -> str:
    """
    Split an enum member name into capitalised words.

    Both ``CAMEL_CASE_VALUE`` and ``CamelCaseValue`` become
    ``"Camel Case Value"``.
    """
    name = member.name
    if "_" in name or name.isupper():
        words = [word for word in name.split("_") if word]
    else:
        words = _CAMEL_BOUNDARY.sub(" ", name).split()
    return " ".join(word.capitalize() for word in words)


def member_name(member: Enum) -> str:
    """
    Return the PascalCase form of an enum member name.

    ``ON_LOAN`` becomes ``"OnLoan"``; names already in PascalCase are
    returned unchanged.
    """
    name = member.name
    if "_" in name or name.isupper():
        return "".join(word.capitalize() for word in name.split("_") if word)
    return name


def enum_to_dict(enum_cls: type[Enum]) -> dict[int, str]:
    """
    Map every member value of an enumeration to its PascalCase name.

    Use ``to_label`` for the word-split display form.

    Args:
        enum_cls: An enumeration whose values are integers.

    Returns:
        Ordered dictionary of ``{value: name}``, e.g. ``{3: "OnLoan"}``.
    """
    return {member.value: member_name(member) for member in enum_cls}


def _normalise(text: str) -> str:
    return re.sub(r"[\s_\-]", "", text).lower()


def from_label(enum_cls: type[E], text: str | None) -> E | None:
    """
    Look up an enum member from a label, a member name or a loose spelling.

    ``"On Loan"``, ``"ON_LOAN"``, ``"OnLoan"`` and ``"on-loan"`` all resolve
    to the same member. Returns None when nothing matches.
    """
    if text is None:
        return None
    wanted = _normalise(str(text))
    if not wanted:
        return None
    for member in enum_cls:
        if _normalise(member.name) == wanted:
            return member
    return None
