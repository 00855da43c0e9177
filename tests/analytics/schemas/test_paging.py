"""Tests for paged results."""

import pytest

from analytics.schemas.paging import MAX_PAGE_SIZE, Page, validate_paging


def test_total_pages_rounds_up():
    assert Page(content=[], page=0, size=20, total_elements=41).total_pages == 3
    assert Page(content=[], page=0, size=20, total_elements=0).total_pages == 0


def test_to_dict():
    page = Page(content=[{"eventId": "e1"}], page=1, size=1, total_elements=2)

    assert page.to_dict() == {
        "content": [{"eventId": "e1"}],
        "page": 1,
        "size": 1,
        "totalElements": 2,
        "totalPages": 2,
    }


@pytest.mark.parametrize("page,size", [(-1, 20), (0, 0), (0, MAX_PAGE_SIZE + 1)])
def test_validate_paging_rejects(page, size):
    with pytest.raises(ValueError):
        validate_paging(page, size)


def test_validate_paging_accepts_bounds():
    validate_paging(0, 1)
    validate_paging(5, MAX_PAGE_SIZE)
