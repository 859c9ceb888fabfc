"""Shared FastAPI dependencies: store context, actor and read context."""
import logging
from typing import Optional

from fastapi import Header, Request
from sqlalchemy.orm import Session

from ..context import StoreContext
from ..errors import ValidationError

logger = logging.getLogger("odp-core.api")


def get_stores(request: Request) -> StoreContext:
    """The StoreContext built at startup."""
    return request.app.state.stores


def get_actor(x_user_id: str = Header(..., min_length=1, description="Authenticated user id")) -> str:
    """Actor id supplied by the authenticating edge (X-User-Id header)."""
    return x_user_id


def resolve_read_context(
    db: Session,
    stores: StoreContext,
    baseline: Optional[int],
    from_wave: Optional[int],
    edition: Optional[int],
) -> tuple[Optional[int], Optional[int]]:
    """
    Turn list/show query parameters into (baseline_id, from_wave_id).

    An edition stands for its baseline and starts-from wave and cannot be
    combined with either.

    Raises:
        ValidationError: If edition is combined with baseline or from_wave
        NotFoundError: If the edition does not exist
    """
    if edition is None:
        return baseline, from_wave
    if baseline is not None or from_wave is not None:
        raise ValidationError("edition cannot be combined with baseline or from_wave")
    context = stores.editions.resolve_context(db, edition)
    logger.debug(f"Edition {edition} resolved to baseline {context.baseline_id}, wave {context.from_wave_id}")
    return context.baseline_id, context.from_wave_id
