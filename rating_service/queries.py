from typing import Callable, List, Tuple, Type, TypeVar
import logging

from rating_service.errors import UnsupportedQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")


def fetch_with_fallback(
    primary: Callable[[], List[T]],
    fallback: Callable[[], List[T]],
    key: Callable[[T], object],
    reverse: bool = False,
    degrade_on: Tuple[Type[BaseException], ...] = (UnsupportedQuery,),
) -> List[T]:
    """Run the store-ordered ``primary`` query, or ``fallback`` sorted in memory.

    Only the exceptions in ``degrade_on`` trigger the fallback; anything else
    propagates to the caller.
    """
    try:
        return primary()
    except degrade_on as e:
        logger.warning(f"Ordered query unsupported, sorting in memory instead: {e}")
    return sorted(fallback(), key=key, reverse=reverse)
