"""Paged query results shared by the durable store and the search index."""

import math
from dataclasses import dataclass, field
from typing import Any

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 1000


@dataclass(frozen=True)
class Page:
    """One page of results; page numbers are zero-based."""

    content: list[dict[str, Any]] = field(default_factory=list)
    page: int = 0
    size: int = DEFAULT_PAGE_SIZE
    total_elements: int = 0

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return math.ceil(self.total_elements / self.size)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "page": self.page,
            "size": self.size,
            "totalElements": self.total_elements,
            "totalPages": self.total_pages,
        }


def validate_paging(page: int, size: int) -> None:
    if page < 0:
        raise ValueError(f"page must be >= 0, got {page}")
    if not 1 <= size <= MAX_PAGE_SIZE:
        raise ValueError(f"size must be between 1 and {MAX_PAGE_SIZE}, got {size}")
