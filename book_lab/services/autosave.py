"""
Debounced auto-save for chapter edits.
"""

import threading
from typing import Any, Callable, Dict, Optional

from loguru import logger

from book_lab.core.exceptions import NotFoundError
from book_lab.db.models import ChapterRead
from book_lab.db.store import CHAPTER_FIELDS


class ChapterAutoSaver:
    """Holds at most one pending chapter write behind a cancellable timer.

    Every ``update`` restarts the countdown, so a burst of edits produces a
    single write ``delay`` seconds after the last one.
    """

    def __init__(
        self,
        store,
        delay: float = 2.0,
        on_saved: Optional[Callable[[ChapterRead], None]] = None,
    ):
        self.store = store
        self.delay = delay
        self.on_saved = on_saved
        self.last_error: Optional[Exception] = None

        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._chapter_id: Optional[int] = None
        self._changes: Dict[str, Any] = {}
        self._generation = 0

    @property
    def pending(self) -> Optional[Dict[str, Any]]:
        """The pending write as ``{"chapter_id": ..., **changes}``, or None."""
        with self._lock:
            if self._chapter_id is None:
                return None
            return {"chapter_id": self._chapter_id, **self._changes}

    def update(self, chapter_id: int, **changes: Any) -> None:
        unknown = set(changes) - CHAPTER_FIELDS
        if unknown:
            raise ValueError(f"Unknown chapter fields: {', '.join(sorted(unknown))}")

        with self._lock:
            if self._chapter_id is not None and self._chapter_id != chapter_id:
                self.flush()

            self._chapter_id = chapter_id
            self._changes.update(changes)

            self._cancel_timer()
            self._generation += 1
            self._timer = threading.Timer(self.delay, self._on_timer, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> Optional[ChapterRead]:
        """Write the pending changes now. Returns the saved chapter, if any.

        A chapter deleted in the meantime drops its pending changes. Any other
        failure keeps them pending and re-raises.
        """
        with self._lock:
            self._cancel_timer()
            chapter = self._write_pending()
        if chapter is not None and self.on_saved:
            self.on_saved(chapter)
        return chapter

    def cancel(self) -> None:
        """Drop the pending write."""
        with self._lock:
            self._cancel_timer()
            self._chapter_id, self._changes = None, {}

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _write_pending(self) -> Optional[ChapterRead]:
        # Caller holds the lock
        if self._chapter_id is None:
            return None
        chapter_id, changes = self._chapter_id, self._changes

        try:
            chapter = self.store.update_chapter(chapter_id, **changes)
        except NotFoundError:
            logger.warning(f"Chapter {chapter_id} no longer exists, discarding unsaved changes")
            self._chapter_id, self._changes = None, {}
            raise

        self._chapter_id, self._changes = None, {}
        logger.debug(f"Auto-saved chapter {chapter_id} ({', '.join(sorted(changes))})")
        return chapter

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # Superseded by a later update
            if generation != self._generation:
                return
            self._timer = None
            try:
                chapter = self._write_pending()
            except Exception as e:
                self.last_error = e
                logger.error(f"Auto-save failed: {e}")
                return
        if chapter is not None and self.on_saved:
            self.on_saved(chapter)
