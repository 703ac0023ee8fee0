from dataclasses import dataclass

from fastapi import Query

from taskflow.services.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


@dataclass
class PageParams:
    page: int
    size: int
    sort: str | None

    def as_kwargs(self) -> dict:
        kwargs = {"page": self.page, "size": self.size}
        if self.sort:
            kwargs["sort"] = self.sort
        return kwargs


def page_params(
    page: int = Query(0, ge=0),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort: str | None = Query(None, description="Column name, prefix with '-' for descending"),
) -> PageParams:
    return PageParams(page=page, size=size, sort=sort)
