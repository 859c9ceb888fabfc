"""Human-readable item codes such as ``OR-IDL-0007``.

Codes are allocated per (type tag, drafting group) by scanning the codes that
already carry the prefix and taking the greatest numeric suffix, so
``-10000`` follows ``-9999`` even though it sorts before it. Two concurrent
transactions can compute the same next number; the unique index on
``items.code`` rejects the second commit.
"""
import logging
import re
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models
from .errors import ValidationError

logger = logging.getLogger("odp-core.codes")

CODE_DIGITS = 4
_SUFFIX = re.compile(r"(\d+)$")


def normalize_group(group: Union[str, models.DraftingGroup]) -> models.DraftingGroup:
    """
    Map a drafting group value to its enum member.

    Raises:
        ValidationError: If the value is not a known drafting group
    """
    try:
        return models.DraftingGroup(group)
    except ValueError:
        valid = ", ".join(g.value for g in models.DraftingGroup)
        raise ValidationError(f"Invalid drafting group '{group}'. Valid values: {valid}")


def code_prefix(type_tag: str, group: Union[str, models.DraftingGroup]) -> str:
    return f"{type_tag}-{normalize_group(group).value}-"


def next_code_number(existing_code: Optional[str]) -> int:
    """Return the number following the trailing digits of ``existing_code``."""
    if not existing_code:
        return 1
    match = _SUFFIX.search(existing_code)
    if not match:
        return 1
    return int(match.group(1)) + 1


def generate_code(db: Session, type_tag: str, group: Union[str, models.DraftingGroup]) -> str:
    """
    Allocate the next code for a type tag and drafting group.

    Args:
        db: Database session
        type_tag: ON, OR or OC
        group: Drafting group

    Returns:
        Code like ``ON-FLOW-0003``

    Raises:
        ValidationError: If the drafting group is unknown
    """
    prefix = code_prefix(type_tag, group)
    existing = db.scalars(
        select(models.Item.code).where(models.Item.code.startswith(prefix, autoescape=True))
    ).all()
    number = max((next_code_number(c) for c in existing), default=1)

    code = f"{prefix}{number:0{CODE_DIGITS}d}"
    logger.debug(f"Allocated code {code} ({len(existing)} existing with prefix {prefix})")
    return code
