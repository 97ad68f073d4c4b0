"""
Persistent store for books, chapters, notes, topics and settings.

All reads return fully materialized read models; all writes commit before
returning. Unknown ids raise ``NotFoundError``.
"""

from typing import Any, Dict, Iterable, List, Optional, Type

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel

from book_lab.core.exceptions import ConstraintViolationError, NotFoundError
from book_lab.core.secret_codec import SecretCodec
from book_lab.db.database import Database
from book_lab.db.models import (
    Book, BookRead, Chapter, ChapterRead, ChapterStatus, Note, NoteRead,
    NoteTopicLink, Setting, Topic, TopicRead, utcnow,
)


# Setting keys stored encrypted at rest
SENSITIVE_SETTING_KEYS = frozenset({"openai_api_key"})

BOOK_FIELDS = frozenset({"title", "description", "author"})
CHAPTER_FIELDS = frozenset({"title", "outline", "content", "status"})


def count_words(text: Optional[str]) -> int:
    """Approximate word count: whitespace-delimited tokens."""
    if not text:
        return 0
    return len(text.split())


def _check_fields(changes: Dict[str, Any], allowed: Iterable[str], entity: str) -> None:
    unknown = set(changes) - set(allowed)
    if unknown:
        raise ValueError(f"Cannot update {entity} field(s): {', '.join(sorted(unknown))}")


class Store:
    """CRUD operations over the Book Lab database."""

    def __init__(self, database: Database, codec: Optional[SecretCodec] = None):
        self.database = database
        self.codec = codec or SecretCodec()

    # Helpers

    @staticmethod
    def _get_or_raise(session: Session, model: Type[SQLModel], entity_id: Any) -> Any:
        obj = session.get(model, entity_id)
        if obj is None:
            raise NotFoundError(model.__name__, entity_id)
        return obj

    @staticmethod
    def _touch_book(session: Session, book_id: int) -> None:
        book = session.get(Book, book_id)
        if book is not None:
            book.updated_at = utcnow()

    @staticmethod
    def _book_read(session: Session, book: Book) -> BookRead:
        contents = session.query(Chapter.content).filter(Chapter.book_id == book.id).all()
        return BookRead.model_validate(book, update={
            "chapter_count": len(contents),
            "word_count": sum(count_words(content) for (content,) in contents),
        })

    @staticmethod
    def _note_read(note: Note) -> NoteRead:
        topics = sorted(note.topics, key=lambda t: t.id)
        return NoteRead.model_validate(note, update={
            "topics": [topic.name for topic in topics],
            "topic_ids": [topic.id for topic in topics],
        })

    @staticmethod
    def _topic_read(session: Session, topic: Topic) -> TopicRead:
        note_count = session.query(func.count(NoteTopicLink.note_id)).filter(
            NoteTopicLink.topic_id == topic.id
        ).scalar()
        return TopicRead.model_validate(topic, update={"note_count": note_count or 0})

    # Books

    def list_books(self) -> List[BookRead]:
        """All books, most recently modified first."""
        with self.database.session() as session:
            books = session.query(Book).order_by(Book.updated_at.desc(), Book.id.desc()).all()
            return [self._book_read(session, book) for book in books]

    def get_book(self, book_id: int) -> BookRead:
        with self.database.session() as session:
            book = self._get_or_raise(session, Book, book_id)
            return self._book_read(session, book)

    def create_book(self, title: str, description: Optional[str] = None, author: Optional[str] = None) -> BookRead:
        if not title or not title.strip():
            raise ValueError("Book title is required")

        with self.database.session() as session:
            book = Book(title=title, description=description or None, author=author or None)
            session.add(book)
            session.commit()
            session.refresh(book)
            logger.info(f"Created book {book.id}: {book.title}")
            return self._book_read(session, book)

    def update_book(self, book_id: int, **changes: Any) -> BookRead:
        _check_fields(changes, BOOK_FIELDS, "book")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValueError("Book title is required")

        with self.database.session() as session:
            book = self._get_or_raise(session, Book, book_id)
            for field, value in changes.items():
                setattr(book, field, value)
            book.updated_at = utcnow()
            session.commit()
            return self._book_read(session, book)

    def delete_book(self, book_id: int) -> None:
        """Delete a book and, through the foreign key cascade, its chapters."""
        with self.database.session() as session:
            book = self._get_or_raise(session, Book, book_id)
            session.delete(book)
            session.commit()
            logger.info(f"Deleted book {book_id}")

    # Chapters

    def list_chapters(self, book_id: int) -> List[ChapterRead]:
        """Chapters of a book in chapter-number order."""
        with self.database.session() as session:
            self._get_or_raise(session, Book, book_id)
            chapters = session.query(Chapter).filter(
                Chapter.book_id == book_id
            ).order_by(Chapter.chapter_number.asc()).all()
            return [ChapterRead.model_validate(chapter) for chapter in chapters]

    def get_chapter(self, chapter_id: int) -> ChapterRead:
        with self.database.session() as session:
            chapter = self._get_or_raise(session, Chapter, chapter_id)
            return ChapterRead.model_validate(chapter)

    def create_chapter(
        self,
        book_id: int,
        title: str,
        outline: Optional[str] = None,
        content: Optional[str] = None,
        status: str = ChapterStatus.DRAFT.value,
    ) -> ChapterRead:
        """Append a chapter to a book, numbered one past the current last chapter."""
        if not title or not title.strip():
            raise ValueError("Chapter title is required")
        status = ChapterStatus(status).value

        with self.database.session() as session:
            self._get_or_raise(session, Book, book_id)

            current_max = session.query(
                func.coalesce(func.max(Chapter.chapter_number), 0)
            ).filter(Chapter.book_id == book_id).scalar()

            chapter = Chapter(
                book_id=book_id,
                title=title,
                chapter_number=current_max + 1,
                outline=outline or None,
                content=content or None,
                status=status,
            )
            session.add(chapter)
            self._touch_book(session, book_id)
            session.commit()
            session.refresh(chapter)
            logger.info(f"Created chapter {chapter.chapter_number} '{title}' in book {book_id}")
            return ChapterRead.model_validate(chapter)

    def update_chapter(self, chapter_id: int, **changes: Any) -> ChapterRead:
        """Apply a partial update (title, outline, content, status)."""
        _check_fields(changes, CHAPTER_FIELDS, "chapter")
        if "status" in changes:
            changes["status"] = ChapterStatus(changes["status"]).value
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValueError("Chapter title is required")

        with self.database.session() as session:
            chapter = self._get_or_raise(session, Chapter, chapter_id)
            for field, value in changes.items():
                setattr(chapter, field, value)
            chapter.updated_at = utcnow()
            self._touch_book(session, chapter.book_id)
            session.commit()
            return ChapterRead.model_validate(chapter)

    def delete_chapter(self, chapter_id: int) -> None:
        """Delete a chapter and close the gap in its book's numbering."""
        with self.database.session() as session:
            chapter = self._get_or_raise(session, Chapter, chapter_id)
            book_id, number = chapter.book_id, chapter.chapter_number

            session.delete(chapter)
            session.flush()
            session.query(Chapter).filter(
                Chapter.book_id == book_id,
                Chapter.chapter_number > number,
            ).update(
                {Chapter.chapter_number: Chapter.chapter_number - 1},
                synchronize_session=False,
            )
            self._touch_book(session, book_id)
            session.commit()
            logger.info(f"Deleted chapter {chapter_id} (was number {number}) from book {book_id}")

    def reorder_chapters(self, book_id: int, chapter_ids: List[int]) -> List[ChapterRead]:
        """Renumber a book's chapters to follow ``chapter_ids``, all or nothing.

        ``chapter_ids`` must list every chapter of the book exactly once.
        """
        ids = list(chapter_ids)

        with self.database.session() as session:
            self._get_or_raise(session, Book, book_id)
            chapters = {
                chapter.id: chapter
                for chapter in session.query(Chapter).filter(Chapter.book_id == book_id).all()
            }

            if len(ids) != len(set(ids)) or set(ids) != set(chapters):
                raise ValueError(
                    f"Reorder must list each chapter of book {book_id} exactly once "
                    f"(expected {sorted(chapters)}, got {ids})"
                )

            for position, chapter_id in enumerate(ids, start=1):
                chapters[chapter_id].chapter_number = position
            self._touch_book(session, book_id)
            session.commit()
            logger.info(f"Reordered chapters of book {book_id}: {ids}")

        return self.list_chapters(book_id)

    # Notes

    def list_notes(self) -> List[NoteRead]:
        """All notes, newest first, with their topic names."""
        with self.database.session() as session:
            notes = session.query(Note).order_by(Note.created_at.desc(), Note.id.desc()).all()
            return [self._note_read(note) for note in notes]

    def get_note(self, note_id: int) -> NoteRead:
        with self.database.session() as session:
            note = self._get_or_raise(session, Note, note_id)
            return self._note_read(note)

    def get_notes(self, note_ids: Iterable[int]) -> List[NoteRead]:
        """Notes with the given ids; ids that don't exist are skipped."""
        note_ids = list(note_ids)
        if not note_ids:
            return []

        with self.database.session() as session:
            notes = session.query(Note).filter(
                Note.id.in_(note_ids)
            ).order_by(Note.created_at.desc(), Note.id.desc()).all()
            return [self._note_read(note) for note in notes]

    def create_note(self, content: str) -> NoteRead:
        if not content or not content.strip():
            raise ValueError("Note content is required")

        with self.database.session() as session:
            note = Note(content=content)
            session.add(note)
            session.commit()
            session.refresh(note)
            return self._note_read(note)

    def update_note(self, note_id: int, content: str) -> NoteRead:
        if not content or not content.strip():
            raise ValueError("Note content is required")

        with self.database.session() as session:
            note = self._get_or_raise(session, Note, note_id)
            note.content = content
            session.commit()
            return self._note_read(note)

    def delete_note(self, note_id: int) -> None:
        """Delete a note and its topic links; the topics stay."""
        with self.database.session() as session:
            note = self._get_or_raise(session, Note, note_id)
            session.delete(note)
            session.commit()

    def link_note_to_topic(self, note_id: int, topic_id: int) -> None:
        """Link a note to a topic. Linking an existing pair does nothing."""
        with self.database.session() as session:
            self._get_or_raise(session, Note, note_id)
            self._get_or_raise(session, Topic, topic_id)

            if session.get(NoteTopicLink, (note_id, topic_id)) is not None:
                return

            session.add(NoteTopicLink(note_id=note_id, topic_id=topic_id))
            try:
                session.commit()
            except IntegrityError:
                # Written by someone else in the meantime
                session.rollback()

    def unlink_note_from_topic(self, note_id: int, topic_id: int) -> None:
        with self.database.session() as session:
            session.query(NoteTopicLink).filter(
                NoteTopicLink.note_id == note_id,
                NoteTopicLink.topic_id == topic_id,
            ).delete(synchronize_session=False)
            session.commit()

    # Topics

    def list_topics(self) -> List[TopicRead]:
        """All topics by name, with the number of linked notes."""
        with self.database.session() as session:
            rows = session.query(
                Topic, func.count(NoteTopicLink.note_id)
            ).outerjoin(
                NoteTopicLink, NoteTopicLink.topic_id == Topic.id
            ).group_by(
                Topic.id
            ).order_by(
                Topic.name.asc()
            ).all()

            return [
                TopicRead.model_validate(topic, update={"note_count": note_count})
                for topic, note_count in rows
            ]

    def get_topic(self, topic_id: int) -> TopicRead:
        with self.database.session() as session:
            topic = self._get_or_raise(session, Topic, topic_id)
            return self._topic_read(session, topic)

    def get_topic_by_name(self, name: str) -> Optional[TopicRead]:
        """Exact, case-sensitive lookup."""
        with self.database.session() as session:
            topic = session.query(Topic).filter(Topic.name == name).first()
            if topic is None:
                return None
            return self._topic_read(session, topic)

    def create_topic(self, name: str) -> TopicRead:
        """Create a topic, or return the existing one with the same name."""
        if not name or not name.strip():
            raise ValueError("Topic name is required")

        with self.database.session() as session:
            existing = session.query(Topic).filter(Topic.name == name).first()
            if existing:
                return self._topic_read(session, existing)

            topic = Topic(name=name)
            session.add(topic)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                existing = session.query(Topic).filter(Topic.name == name).first()
                if existing is None:
                    raise ConstraintViolationError(f"Could not create topic '{name}': {e}") from e
                return self._topic_read(session, existing)

            session.refresh(topic)
            logger.debug(f"Created topic {topic.id}: {name}")
            return self._topic_read(session, topic)

    def get_notes_by_topic(self, topic_id: int) -> List[NoteRead]:
        """Notes linked to a topic, newest first."""
        with self.database.session() as session:
            self._get_or_raise(session, Topic, topic_id)
            notes = session.query(Note).join(
                NoteTopicLink, NoteTopicLink.note_id == Note.id
            ).filter(
                NoteTopicLink.topic_id == topic_id
            ).order_by(Note.created_at.desc(), Note.id.desc()).all()
            return [self._note_read(note) for note in notes]

    def delete_topic(self, topic_id: int) -> None:
        """Delete a topic and its links; the notes stay."""
        with self.database.session() as session:
            topic = self._get_or_raise(session, Topic, topic_id)
            session.delete(topic)
            session.commit()

    # Settings

    def get_setting(self, key: str) -> Optional[str]:
        """Raw stored value (still encrypted for sensitive keys)."""
        with self.database.session() as session:
            setting = session.get(Setting, key)
            return setting.value if setting else None

    def set_setting(self, key: str, value: Optional[str]) -> None:
        """Insert or replace a setting, encrypting sensitive values."""
        final_value = value
        if key in SENSITIVE_SETTING_KEYS and value:
            final_value = self.codec.encrypt(value)

        with self.database.session() as session:
            session.merge(Setting(key=key, value=final_value))
            session.commit()
        logger.info(f"Setting '{key}' updated")

    def get_decrypted_setting(self, key: str) -> Optional[str]:
        value = self.get_setting(key)
        if not value:
            return None
        if key in SENSITIVE_SETTING_KEYS:
            return self.codec.decrypt(value)
        return value
