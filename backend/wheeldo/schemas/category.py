import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, StringConstraints

CategoryName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
HexColor = Annotated[str, StringConstraints(pattern=r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")]
Icon = Annotated[str, StringConstraints(strip_whitespace=True, max_length=50)]


class CategoryCreate(BaseModel):
    name: CategoryName
    color: HexColor = "#6b7280"
    icon: Icon | None = None


class CategoryUpdate(BaseModel):
    name: CategoryName | None = None
    color: HexColor | None = None
    icon: Icon | None = None


class CategoryRead(BaseModel):
    id: uuid.UUID
    name: str
    color: str
    icon: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
