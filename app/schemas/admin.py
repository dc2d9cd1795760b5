# app/schemas/admin.py
from typing import Literal
from pydantic import BaseModel


class TaskInfo(BaseModel):
    """Описание одной фоновой задачи."""
    task_name: str
    description: str


class TaskRunRequest(BaseModel):
    """Схема для запроса на запуск задачи."""
    # Literal ограничивает возможные значения и дает автодополнение в Swagger
    task_name: Literal[
        "all",
        "expire_points",
    ]


class TaskRunResponse(BaseModel):
    status: str
    message: str
