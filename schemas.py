"""
Database Schemas for Pipeline Manager

Each document model maps to a MongoDB collection (see COLLECTIONS).
References to other documents are ObjectIds named `<kind>_id`.

Collections:
- users
- pipelines
- customers
- jobs
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    active = "active"
    completed = "completed"
    paused = "paused"


# ---- Document Schemas ----

class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True)

    created_at: datetime = Field(default_factory=utcnow)


class User(Document):
    github_id: str
    username: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    avatar: Optional[str] = None


class Pipeline(Document):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    steps: List[str] = Field(default_factory=list, description="Ordered step labels")
    user_id: ObjectId


class Customer(Document):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: Optional[str] = None
    user_id: ObjectId


class Job(Document):
    title: str = Field(..., min_length=1)
    customer_id: ObjectId
    pipeline_id: ObjectId
    current_step: str = Field(..., min_length=1)
    status: JobStatus = JobStatus.active
    due_date: Optional[datetime] = None
    progress: int = Field(0, ge=0, le=100)
    user_id: ObjectId


COLLECTIONS = {
    User: "users",
    Pipeline: "pipelines",
    Customer: "customers",
    Job: "jobs",
}


# ---- Request Bodies ----

class LoginRequest(BaseModel):
    username: Optional[str] = None


class PipelineCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    steps: List[str] = Field(default_factory=list)


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: Optional[str] = None


class JobCreate(BaseModel):
    title: str = Field(..., min_length=1)
    customerId: str
    pipelineId: str
    currentStep: str = Field(..., min_length=1)
    dueDate: Optional[datetime] = None
    status: JobStatus = JobStatus.active
    progress: int = Field(0, ge=0, le=100)

    @field_validator("dueDate", mode="before")
    @classmethod
    def blank_due_date(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("dueDate")
    @classmethod
    def due_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
