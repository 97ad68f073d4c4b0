"""
Pydantic models for the API.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from book_lab.db.models import ChapterStatus
from book_lab.services.gateway import LLMProvider


class BookCreate(BaseModel):
    """Data model for creating a book."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    author: Optional[str] = Field(None, max_length=255)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v):
        if not v.strip():
            raise ValueError("title must not be blank")
        return v


class BookUpdate(BaseModel):
    """Data model for updating a book. Only the fields sent are changed."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    author: Optional[str] = Field(None, max_length=255)


class ChapterCreate(BaseModel):
    """Data model for creating a chapter, optionally drafting its outline from a topic."""

    title: str = Field(..., min_length=1, max_length=255)
    topic_id: Optional[int] = None


class ChapterUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    outline: Optional[str] = None
    content: Optional[str] = None
    status: Optional[ChapterStatus] = None


class ChapterReorder(BaseModel):
    chapter_ids: List[int]


class ChapterGenerate(BaseModel):
    """Source notes for chapter writing. Both empty means the first topics' notes."""

    note_ids: Optional[List[int]] = None
    topic_ids: Optional[List[int]] = None


class OutlineRegenerate(BaseModel):
    topic_id: int


class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1)


class NoteUpdate(BaseModel):
    content: str = Field(..., min_length=1)


class NotesProcess(BaseModel):
    """Raw pasted text, split into notes on blank lines."""

    text: str


class TopicCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TextRequest(BaseModel):
    text: str


class OutlineRequest(BaseModel):
    topic: str
    notes: List[str] = Field(default_factory=list)


class RefineRequest(BaseModel):
    text: str
    instructions: str = Field(..., min_length=1)


class ChapterRequest(BaseModel):
    outline: str
    notes: List[str] = Field(default_factory=list)


class TopicsResponse(BaseModel):
    topics: List[str]


class TextResponse(BaseModel):
    text: str


class SettingValue(BaseModel):
    value: Optional[str] = None


class SettingResponse(BaseModel):
    key: str
    value: Optional[str] = None


class OnboardingRequest(BaseModel):
    """Data model for completing onboarding."""

    provider: LLMProvider
    api_key: Optional[str] = None
    ollama_url: Optional[str] = None
    ollama_model: Optional[str] = None
    author_name: Optional[str] = None


class OnboardingStatus(BaseModel):
    complete: bool
    provider: Optional[str] = None


class ExportRequest(BaseModel):
    output_dir: Optional[str] = None
    format: str = Field("pdf", pattern="^(pdf|html)$")


class BackupRequest(BaseModel):
    path: str = Field(..., min_length=1)


class ExportResponse(BaseModel):
    path: str
    filename: str


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Data model for error response."""

    detail: str
