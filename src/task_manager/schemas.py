from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from task_manager.models import TASK_STATUS_PENDING


class TaskCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Falsy values of any type reach the route, which answers 400 for them
    description: Any = Field(
        default=None,
        description="Free-text task description; the title is generated from it",
    )
    due_date: str | None = Field(
        default=None,
        description="Optional ISO-8601 date or datetime",
    )

    @field_validator("description")
    @classmethod
    def truthy_description_is_text(cls, value: Any) -> Any:
        if value and not isinstance(value, str):
            raise ValueError("Input should be a valid string")
        return value


class TaskCreated(BaseModel):
    id: int
    title: str
    description: str
    # Echoes the caller's raw value, not the coerced stored one
    due_date: str | None = None
    status: str = TASK_STATUS_PENDING
