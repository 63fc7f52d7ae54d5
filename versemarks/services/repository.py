"""SQLAlchemy-backed storage for bookmarks, labels and their associations.

Mutating methods only stage changes on the session. Callers group them in
``transaction()``, which commits once or rolls back and raises
``StorageFailure``.
"""

import enum
import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from versemarks.errors import NotFound, StorageFailure
from versemarks.models import Bookmark, BookmarkToLabel, Label, Preference

logger = logging.getLogger(__name__)


class BookmarkSortOrder(enum.Enum):
    BIBLE_ORDER = 'bible_order'
    CREATED_AT = 'created_at'
    LAST_UPDATED = 'last_updated'

    @classmethod
    def parse(cls, value, default=None):
        if value is None or value == '':
            return default or cls.BIBLE_ORDER
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f'Unknown sort order: {value!r}') from None


def _order_by(order):
    if order is BookmarkSortOrder.CREATED_AT:
        return (Bookmark.created_at.desc(), Bookmark.id.desc())
    if order is BookmarkSortOrder.LAST_UPDATED:
        return (Bookmark.last_updated_on.desc(), Bookmark.id.desc())
    return (Bookmark.ordinal_start.asc(), Bookmark.ordinal_end.asc(), Bookmark.id.asc())


class BookmarkRepository:
    def __init__(self, session):
        self._session = session

    @contextmanager
    def transaction(self):
        """Commit everything staged inside the block, or roll it all back."""
        try:
            yield self
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error('Bookmark storage error: %s', e)
            raise StorageFailure(str(e)) from e
        except Exception:
            self._session.rollback()
            raise

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    def _bookmarks(self):
        return self._session.query(Bookmark)

    def insert_bookmark(self, bookmark):
        if not bookmark.id:
            bookmark.id = None
        bookmark.last_updated_on = datetime.now(timezone.utc)
        self._session.add(bookmark)
        self._session.flush()
        return bookmark.id

    def update_bookmark(self, bookmark):
        if self._session.get(Bookmark, bookmark.id) is None:
            raise NotFound(f'Bookmark {bookmark.id} not found', bookmark.id)
        bookmark.last_updated_on = datetime.now(timezone.utc)
        bookmark = self._session.merge(bookmark)
        self._session.flush()
        return bookmark

    def touch_bookmark(self, bookmark):
        """Bump ``last_updated_on`` without changing anything else."""
        bookmark.last_updated_on = datetime.now(timezone.utc)
        self._session.flush()
        return bookmark

    def delete_bookmarks_by_id(self, bookmark_ids):
        ids = [i for i in bookmark_ids if i]
        if not ids:
            return 0
        self._session.query(BookmarkToLabel).filter(
            BookmarkToLabel.bookmark_id.in_(ids)
        ).delete()
        deleted = self._bookmarks().filter(Bookmark.id.in_(ids)).delete()
        return deleted

    def delete_bookmarks(self, bookmarks):
        return self.delete_bookmarks_by_id([b.id for b in bookmarks])

    def delete_bookmark(self, bookmark):
        return self.delete_bookmarks_by_id([bookmark.id])

    def bookmark_by_id(self, bookmark_id):
        return self._session.get(Bookmark, bookmark_id)

    def bookmarks_by_ids(self, bookmark_ids):
        if not bookmark_ids:
            return []
        return (
            self._bookmarks()
            .filter(Bookmark.id.in_(list(bookmark_ids)))
            .order_by(*_order_by(BookmarkSortOrder.BIBLE_ORDER))
            .all()
        )

    def all_bookmarks(self, order=BookmarkSortOrder.BIBLE_ORDER):
        return self._bookmarks().order_by(*_order_by(order)).all()

    def all_bookmarks_with_notes(self, order=BookmarkSortOrder.BIBLE_ORDER):
        return (
            self._bookmarks()
            .filter(Bookmark.notes.isnot(None), Bookmark.notes != '')
            .order_by(*_order_by(order))
            .all()
        )

    def bookmarks_starting_at(self, verse):
        return (
            self._bookmarks()
            .filter(Bookmark.ordinal_start == verse.ordinal)
            .order_by(Bookmark.id.asc())
            .all()
        )

    def bookmarks_in_range(self, verse_range):
        """Bookmarks overlapping ``verse_range`` at any point."""
        return (
            self._bookmarks()
            .filter(
                Bookmark.ordinal_start <= verse_range.ordinal_end,
                Bookmark.ordinal_end >= verse_range.ordinal_start,
            )
            .order_by(*_order_by(BookmarkSortOrder.BIBLE_ORDER))
            .all()
        )

    def bookmarks_in_book(self, book):
        return (
            self._bookmarks()
            .filter(Bookmark.book == book)
            .order_by(*_order_by(BookmarkSortOrder.BIBLE_ORDER))
            .all()
        )

    def has_bookmarks_at(self, verse):
        ordinal = verse.ordinal
        query = self._bookmarks().filter(
            Bookmark.ordinal_start <= ordinal,
            Bookmark.ordinal_end >= ordinal,
        )
        return self._session.query(query.exists()).scalar()

    def bookmarks_with_label(self, label, order=BookmarkSortOrder.BIBLE_ORDER):
        return (
            self._bookmarks()
            .join(BookmarkToLabel, BookmarkToLabel.bookmark_id == Bookmark.id)
            .filter(BookmarkToLabel.label_id == label.id)
            .order_by(*_order_by(order))
            .all()
        )

    def bookmarks_for_verse_start_with_label(self, verse, label):
        return (
            self._bookmarks()
            .join(BookmarkToLabel, BookmarkToLabel.bookmark_id == Bookmark.id)
            .filter(
                Bookmark.ordinal_start == verse.ordinal,
                BookmarkToLabel.label_id == label.id,
            )
            .order_by(Bookmark.id.asc())
            .all()
        )

    def unlabelled_bookmarks(self, order=BookmarkSortOrder.BIBLE_ORDER):
        labelled = (
            self._session.query(BookmarkToLabel)
            .filter(BookmarkToLabel.bookmark_id == Bookmark.id)
            .exists()
        )
        return (
            self._bookmarks()
            .filter(~labelled)
            .order_by(*_order_by(order))
            .all()
        )

    def save_note(self, bookmark_id, note):
        """Returns the updated bookmark, or None if ``bookmark_id`` is gone."""
        bookmark = self.bookmark_by_id(bookmark_id)
        if bookmark is None:
            return None
        bookmark.notes = note
        bookmark.last_updated_on = datetime.now(timezone.utc)
        self._session.flush()
        return bookmark

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def insert_label(self, label):
        if not label.id:
            label.id = None
        self._session.add(label)
        self._session.flush()
        return label.id

    def update_label(self, label):
        if self._session.get(Label, label.id) is None:
            raise NotFound(f'Label {label.id} not found', label.id)
        label = self._session.merge(label)
        self._session.flush()
        return label

    def delete_labels_by_id(self, label_ids):
        ids = [i for i in label_ids if i and i > 0]
        if not ids:
            return 0
        self._session.query(BookmarkToLabel).filter(
            BookmarkToLabel.label_id.in_(ids)
        ).delete()
        deleted = self._session.query(Label).filter(Label.id.in_(ids)).delete()
        return deleted

    def delete_label(self, label):
        return self.delete_labels_by_id([label.id])

    def label_by_id(self, label_id):
        if label_id is None or label_id <= 0:
            return None
        return self._session.get(Label, label_id)

    def labels_by_ids(self, label_ids):
        ids = [i for i in label_ids if i and i > 0]
        if not ids:
            return []
        return self._session.query(Label).filter(Label.id.in_(ids)).all()

    def all_labels_sorted_by_name(self):
        return (
            self._session.query(Label)
            .order_by(func.lower(Label.name), Label.id)
            .all()
        )

    def label_by_name(self, name):
        return (
            self._session.query(Label)
            .filter(Label.name == name)
            .order_by(Label.id.asc())
            .first()
        )

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    def insert_associations(self, pairs):
        for bookmark_id, label_id in pairs:
            self._session.add(BookmarkToLabel(bookmark_id=bookmark_id, label_id=label_id))
        self._session.flush()

    def delete_associations(self, pairs):
        for bookmark_id, label_id in pairs:
            self._session.query(BookmarkToLabel).filter_by(
                bookmark_id=bookmark_id, label_id=label_id
            ).delete()
        self._session.flush()

    def clear_associations_for_bookmark(self, bookmark_id):
        self._session.query(BookmarkToLabel).filter_by(
            bookmark_id=bookmark_id
        ).delete()
        self._session.flush()

    def labels_for_bookmark(self, bookmark_id):
        return (
            self._session.query(Label)
            .join(BookmarkToLabel, BookmarkToLabel.label_id == Label.id)
            .filter(BookmarkToLabel.bookmark_id == bookmark_id)
            .order_by(func.lower(Label.name), Label.id)
            .all()
        )


class PreferenceStore:
    """Integer preferences kept in the ``preferences`` table."""

    def __init__(self, session):
        self._session = session

    def get_int64(self, key):
        pref = self._session.get(Preference, key)
        return pref.int_value if pref is not None else None

    def set_int64(self, key, value):
        pref = self._session.get(Preference, key)
        if pref is None:
            pref = Preference(key=key)
            self._session.add(pref)
        pref.int_value = value
        self._session.flush()
