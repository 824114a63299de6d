"""Category Schemas — public view of seeded report categories."""

from pydantic import BaseModel, ConfigDict


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None


class CategoryListResponse(BaseModel):
    success: bool = True
    data: list[CategoryResponse]
