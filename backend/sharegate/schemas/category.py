from datetime import datetime

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    parent_id: int | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    parent_id: int | None = None


class CategoryRead(BaseModel):
    id: int
    name: str
    description: str
    parent_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}
