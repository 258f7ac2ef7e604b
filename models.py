from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Priority = Literal["low", "medium", "high"]


class CamelModel(BaseModel):
    # JSON goes out camelCase, Python code keeps snake_case names
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- tasks ---

class TaskCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    completed: Optional[bool] = None

    def changes(self) -> dict:
        # fields left out of the request (or sent as null) keep their stored value
        return self.model_dump(exclude_none=True)


class Task(CamelModel):
    id: int
    owner_id: Optional[int] = None
    title: str
    description: str = ""
    priority: Priority = "medium"
    completed: bool = False
    created_at: datetime
    updated_at: datetime


class OpenTask(BaseModel):
    """Task as served by the open (no accounts) profile."""

    id: int
    title: str
    description: str
    completed: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task) -> "OpenTask":
        return cls(**task.model_dump())


class Stats(CamelModel):
    total: int
    completed: int
    pending: int
    high_priority: int


# --- users / auth ---

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class User(BaseModel):
    id: int
    username: str
    email: str
    password_hash: str
    created_at: datetime


class PublicUser(BaseModel):
    id: int
    username: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(id=user.id, username=user.username, email=user.email)


class AuthResult(BaseModel):
    message: str
    token: str
    user: PublicUser


class Identity(BaseModel):
    user_id: int
    username: str


# --- misc responses ---

class Message(BaseModel):
    message: str


class Health(BaseModel):
    status: str
    timestamp: datetime
