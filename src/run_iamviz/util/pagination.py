from __future__ import annotations

from typing import Callable, Generator, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


def paginate(
    fetch: Callable[[str | None], Tuple[Sequence[T], str | None]],
    *,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Generator[T, None, None]:
    """
    Yield items from fetch(page_token) until it returns a falsy next token.

    Cloud Run reports continuation differently per resource (nextPageToken on
    locations, metadata.continue on services); fetch hides that and returns
    (items, next_page_token). should_stop is consulted before every follow-up
    page so a cancelled caller does not keep issuing requests.
    """
    page: str | None = None
    while True:
        items, next_page = fetch(page)
        for it in items:
            yield it
        if not next_page:
            break
        if should_stop is not None and should_stop():
            break
        page = next_page
