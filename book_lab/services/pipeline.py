"""
Content pipeline: notes in, topics, outlines and chapters out.

Each operation makes at most one gateway call per unit of work. Gateway
failures are re-raised as the operation's own error, chained from the
gateway error so callers can still tell a missing provider from a network failure.
"""

from typing import Any, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from book_lab.core.config import PipelineConfig
from book_lab.core.exceptions import (
    ChapterGenerationError,
    NoteProcessingError,
    OutlineGenerationError,
    RefinementError,
    TopicExtractionError,
)
from book_lab.services import prompts
from book_lab.services.gateway import ModelGateway


class ProcessedParagraph(BaseModel):
    """One paragraph committed by ``process_notes``."""
    note_id: int
    topics: List[str] = Field(default_factory=list)
    content: str


class ProcessNotesResult(BaseModel):
    success: bool = True
    processed_count: int = 0
    results: List[ProcessedParagraph] = Field(default_factory=list)


def _note_text(note: Any) -> str:
    """Content of a note given as a record, read model, dict or plain string."""
    if isinstance(note, str):
        return note
    if isinstance(note, dict):
        return note.get("content") or ""
    return getattr(note, "content", None) or ""


def format_notes(notes: Iterable[Any]) -> str:
    """Numbered note list, one blank line between entries."""
    return "\n\n".join(f"{i}. {_note_text(note)}" for i, note in enumerate(notes, start=1))


def split_paragraphs(raw_text: str, min_length: int = 21) -> List[str]:
    """Split pasted text on blank lines, dropping paragraphs shorter than ``min_length``."""
    paragraphs = [p.strip() for p in raw_text.split("\n\n")]
    return [p for p in paragraphs if len(p) >= min_length]


class ContentPipeline:
    """Orchestrates the gateway and the store for the writing workflow."""

    def __init__(self, gateway: ModelGateway, store, config: Optional[PipelineConfig] = None):
        self.gateway = gateway
        self.store = store
        self.config = config or PipelineConfig()

    def extract_topics(self, text: str) -> List[str]:
        """Ask the model for 1-3 topic names for a paragraph."""
        try:
            response = self.gateway.complete(
                prompts.topic_messages(text),
                temperature=self.config.topic_temperature,
                max_tokens=self.config.topic_max_tokens,
            )
        except Exception as e:
            logger.error(f"Error extracting topics: {e}")
            raise TopicExtractionError(e) from e

        topics = [t.strip() for t in response.split(",")]
        return [t for t in topics if t]

    def process_notes(self, raw_text: str) -> ProcessNotesResult:
        """Split pasted text into notes, tag each with topics and store it.

        Paragraphs are handled one at a time. If one fails, the notes already
        stored stay in place and are attached to the raised error.
        """
        paragraphs = split_paragraphs(raw_text, self.config.min_paragraph_length)
        logger.info(f"Processing {len(paragraphs)} paragraphs")

        results: List[ProcessedParagraph] = []
        for paragraph in paragraphs:
            try:
                topics = self.extract_topics(paragraph)
                note = self.store.create_note(paragraph)
                for name in topics:
                    topic = self.store.create_topic(name)
                    self.store.link_note_to_topic(note.id, topic.id)
            except Exception as e:
                logger.error(f"Error processing notes after {len(results)} paragraphs: {e}")
                raise NoteProcessingError(e, results=results) from e

            results.append(ProcessedParagraph(
                note_id=note.id,
                topics=topics,
                content=paragraph[:self.config.preview_length] + "...",
            ))
            logger.debug(f"Note {note.id} tagged with {topics}")

        return ProcessNotesResult(success=True, processed_count=len(paragraphs), results=results)

    def generate_outline(self, topic_name: str, notes: Iterable[Any]) -> str:
        """Draft a chapter outline for a topic from its notes. Nothing is saved."""
        try:
            return self.gateway.complete(
                prompts.outline_messages(topic_name, format_notes(notes)),
                temperature=self.config.outline_temperature,
                max_tokens=self.config.outline_max_tokens,
            )
        except Exception as e:
            logger.error(f"Error generating outline: {e}")
            raise OutlineGenerationError(e) from e

    def refine_outline(self, outline: str, instructions: str) -> str:
        try:
            return self.gateway.complete(
                prompts.refine_outline_messages(outline, instructions),
                temperature=self.config.outline_temperature,
                max_tokens=self.config.outline_max_tokens,
            )
        except Exception as e:
            logger.error(f"Error refining outline: {e}")
            raise RefinementError(e) from e

    def generate_chapter(self, outline: str, notes: Iterable[Any]) -> str:
        """Write chapter prose (HTML) from an outline and source notes."""
        try:
            content = self.gateway.complete(
                prompts.chapter_messages(outline, format_notes(notes)),
                temperature=self.config.chapter_temperature,
                max_tokens=self.config.chapter_max_tokens,
            )
        except Exception as e:
            logger.error(f"Error generating chapter: {e}")
            raise ChapterGenerationError(e) from e

        logger.info(f"Generated chapter ({len(content)} chars)")
        return content

    def refine_content(self, content: str, instructions: str) -> str:
        try:
            return self.gateway.complete(
                prompts.refine_content_messages(content, instructions),
                temperature=self.config.refine_content_temperature,
                max_tokens=self.config.refine_content_max_tokens,
            )
        except Exception as e:
            logger.error(f"Error refining content: {e}")
            raise RefinementError(e) from e
