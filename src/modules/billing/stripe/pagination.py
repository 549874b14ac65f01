"""Bounded cursor pagination over Stripe list endpoints."""

from typing import Any, Callable

from src.utils.logger import get_logger

logger = get_logger(__name__)

PageFetcher = Callable[[dict], Any]


class BoundedPaginator:
    """Walk a Stripe list endpoint with ``starting_after`` cursors.

    Stops when Stripe reports no more pages, when ``max_items`` records were
    collected, or after ``max_pages`` requests, whichever comes first. A
    failing page request propagates; nothing partial is returned.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        page_size: int = 100,
        max_pages: int = 100,
        max_items: int | None = None,
        label: str = "stripe_list",
    ):
        if page_size < 1 or max_pages < 1:
            raise ValueError("page_size and max_pages must be positive")
        self.fetch_page = fetch_page
        self.page_size = page_size
        self.max_pages = max_pages
        self.max_items = max_items
        self.label = label
        self.pages_fetched = 0
        self.truncated = False

    def fetch_all(self) -> list:
        records: list = []
        starting_after: str | None = None

        while self.pages_fetched < self.max_pages:
            params: dict[str, Any] = {"limit": self.page_size}
            if starting_after:
                params["starting_after"] = starting_after

            response = self.fetch_page(params)
            self.pages_fetched += 1
            data = list(response.get("data") or [])

            for obj in data:
                records.append(obj)
                if self.max_items is not None and len(records) >= self.max_items:
                    self.truncated = bool(response.get("has_more")) or obj is not data[-1]
                    if self.truncated:
                        logger.warning(
                            "Stripe list capped", label=self.label, cap=self.max_items
                        )
                    return records

            if not response.get("has_more") or not data:
                return records
            starting_after = data[-1]["id"]

        self.truncated = True
        logger.warning(
            "Stripe list stopped at page bound",
            label=self.label,
            max_pages=self.max_pages,
            records=len(records),
        )
        return records
