from pydantic import BaseModel


class Pagination(BaseModel):
    current: int
    pages: int
    total: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        pages = (total + limit - 1) // limit if limit > 0 else 0
        return cls(current=page, pages=pages, total=total)
