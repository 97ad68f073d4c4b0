"""
Chapter workflow: outline drafting, approval and chapter writing.

Status changes only here, on explicit actions. Regenerating or refining an
outline leaves status alone.
"""

from typing import Iterable, List, Optional

from loguru import logger

from book_lab.db.models import ChapterRead, ChapterStatus, NoteRead
from book_lab.services.pipeline import ContentPipeline


# Topics whose notes feed chapter generation when none are given explicitly
DEFAULT_SOURCE_TOPICS = 3


class ChapterService:
    def __init__(self, store, pipeline: ContentPipeline):
        self.store = store
        self.pipeline = pipeline

    def create_chapter(self, book_id: int, title: str, topic_id: Optional[int] = None) -> ChapterRead:
        """Append a chapter; with ``topic_id`` an outline is drafted from that topic's notes first."""
        if topic_id is None:
            return self.store.create_chapter(book_id, title)

        self.store.get_book(book_id)
        topic = self.store.get_topic(topic_id)
        notes = self.store.get_notes_by_topic(topic_id)
        outline = self.pipeline.generate_outline(topic.name, notes)

        return self.store.create_chapter(
            book_id,
            title,
            outline=outline,
            status=ChapterStatus.OUTLINE.value,
        )

    def regenerate_outline(self, chapter_id: int, topic_id: int) -> ChapterRead:
        chapter = self.store.get_chapter(chapter_id)
        topic = self.store.get_topic(topic_id)
        outline = self.pipeline.generate_outline(topic.name, self.store.get_notes_by_topic(topic_id))
        return self.store.update_chapter(chapter.id, outline=outline)

    def refine_outline(self, chapter_id: int, instructions: str) -> ChapterRead:
        chapter = self.store.get_chapter(chapter_id)
        if not chapter.outline:
            raise ValueError(f"Chapter {chapter_id} has no outline to refine")
        outline = self.pipeline.refine_outline(chapter.outline, instructions)
        return self.store.update_chapter(chapter_id, outline=outline)

    def approve_outline(self, chapter_id: int) -> ChapterRead:
        chapter = self.store.get_chapter(chapter_id)
        if not chapter.outline:
            raise ValueError(f"Chapter {chapter_id} has no outline to approve")
        logger.info(f"Outline approved for chapter {chapter_id}")
        return self.store.update_chapter(chapter_id, status=ChapterStatus.OUTLINE.value)

    def source_notes(
        self,
        note_ids: Optional[Iterable[int]] = None,
        topic_ids: Optional[Iterable[int]] = None,
    ) -> List[NoteRead]:
        """Notes to write from: explicit ids, else the notes of the given (or first few) topics."""
        if note_ids:
            return self.store.get_notes(note_ids)

        if topic_ids is None:
            topic_ids = [t.id for t in self.store.list_topics()[:DEFAULT_SOURCE_TOPICS]]

        notes: List[NoteRead] = []
        seen = set()
        for topic_id in topic_ids:
            for note in self.store.get_notes_by_topic(topic_id):
                if note.id not in seen:
                    seen.add(note.id)
                    notes.append(note)
        return notes

    def write_chapter(
        self,
        chapter_id: int,
        note_ids: Optional[Iterable[int]] = None,
        topic_ids: Optional[Iterable[int]] = None,
    ) -> ChapterRead:
        """Generate chapter prose from its outline and mark the chapter complete."""
        chapter = self.store.get_chapter(chapter_id)
        if not chapter.outline:
            raise ValueError(f"Chapter {chapter_id} needs an outline before it can be written")

        notes = self.source_notes(note_ids, topic_ids)
        logger.info(f"Writing chapter {chapter_id} from {len(notes)} notes")
        content = self.pipeline.generate_chapter(chapter.outline, notes)

        return self.store.update_chapter(
            chapter_id,
            content=content,
            status=ChapterStatus.COMPLETE.value,
        )

    def refine_content(self, chapter_id: int, instructions: str) -> ChapterRead:
        chapter = self.store.get_chapter(chapter_id)
        if not chapter.content:
            raise ValueError(f"Chapter {chapter_id} has no content to refine")
        content = self.pipeline.refine_content(chapter.content, instructions)
        return self.store.update_chapter(chapter_id, content=content)
