"""Course content Pydantic schemas."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional


class CourseSchema(BaseModel):
    """Top-level course."""
    id: int
    title: str = Field(..., min_length=1)
    description: str = ""
    content: str = ""
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True


class CourseSubcontentSchema(BaseModel):
    """Lesson inside a course; ``order_index`` sets display order and may have gaps."""
    id: int
    course_id: int
    title: str = Field(..., min_length=1)
    content: str = ""
    url: Optional[str] = None
    order_index: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True
