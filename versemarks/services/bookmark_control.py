"""Bookmark and label operations with change notification.

``BookmarkControl`` is the one entry point that mutates bookmarks, labels and
their associations. Each mutating method stages its changes in a single
repository transaction and, once that has committed, publishes exactly one
event on the injected bus. Pass ``do_not_sync=True`` when applying changes
that came from another synchronisation source, to avoid echoing them back.

Several lookups take "the first bookmark starting at this verse". More than
one bookmark may share an anchor; those lookups pick the oldest.
"""

import logging

from versemarks.errors import InvalidIdentity, NotFound, UnpersistedLabel
from versemarks.models import Bookmark
from versemarks.services.events import (
    BookmarkAddedOrUpdatedEvent,
    BookmarksDeletedEvent,
    LabelAddedOrUpdatedEvent,
    LabelsDeletedEvent,
)
from versemarks.services.labels import (
    LABEL_ALL,
    LABEL_UNLABELLED,
    LabelKind,
    VirtualLabel,
    reconcile_labels,
)
from versemarks.services.repository import BookmarkSortOrder
from versemarks.services.speak_label import SpeakLabelResolver
from versemarks.services.versification import canonical_book_name

logger = logging.getLogger(__name__)


class BookmarkControl:
    def __init__(self, repository, preferences, bus,
                 speak_label_name=None, speak_label_preference_key=None,
                 default_order=BookmarkSortOrder.BIBLE_ORDER):
        self._repository = repository
        self._bus = bus
        self.default_order = default_order
        resolver_kwargs = {}
        if speak_label_name:
            resolver_kwargs['name'] = speak_label_name
        if speak_label_preference_key:
            resolver_kwargs['preference_key'] = speak_label_preference_key
        self._speak_label = SpeakLabelResolver(repository, preferences, **resolver_kwargs)

    @property
    def bus(self):
        return self._bus

    def _publish(self, event, do_not_sync):
        if not do_not_sync:
            self._bus.publish(event)

    def _label_ids(self, bookmark_id):
        return [label.id for label in self._repository.labels_for_bookmark(bookmark_id)]

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    def add_or_update_bookmark(self, bookmark, label_ids=None, do_not_sync=False):
        """Insert a new bookmark or update an existing one.

        If ``label_ids`` is given the bookmark's labels are replaced with it
        (virtual and unsaved ids are ignored).
        """
        with self._repository.transaction():
            if bookmark.id:
                bookmark = self._repository.update_bookmark(bookmark)
            else:
                self._repository.insert_bookmark(bookmark)
            if label_ids is not None:
                label_ids = self._replace_label_ids(bookmark.id, label_ids)

        logger.debug('Saved bookmark %s', bookmark.id)
        if label_ids is None:
            label_ids = self._label_ids(bookmark.id)
        self._publish(BookmarkAddedOrUpdatedEvent(bookmark, label_ids), do_not_sync)
        return bookmark

    def add_bookmark_for_verse_range(self, verse_range, do_not_sync=False):
        """Bookmark ``verse_range``, or refresh the date of the one already there."""
        bookmark = self.first_bookmark_starting_at_verse(verse_range.start)
        with self._repository.transaction():
            if bookmark is None:
                bookmark = Bookmark(verse_range)
                self._repository.insert_bookmark(bookmark)
                label_ids = []
            else:
                self._repository.touch_bookmark(bookmark)
                label_ids = None
        if label_ids is None:
            label_ids = self._label_ids(bookmark.id)
        self._publish(BookmarkAddedOrUpdatedEvent(bookmark, label_ids), do_not_sync)
        return bookmark

    def delete_bookmark_for_verse_range(self, verse_range, do_not_sync=False):
        """Delete the first bookmark starting at the range start, if any."""
        bookmark = self.first_bookmark_starting_at_verse(verse_range.start)
        if bookmark is None:
            return None
        self.delete_bookmark(bookmark, do_not_sync=do_not_sync)
        return bookmark.id

    def delete_bookmark(self, bookmark, do_not_sync=False):
        self.delete_bookmarks_by_id([bookmark.id], do_not_sync=do_not_sync)

    def delete_bookmarks(self, bookmarks, do_not_sync=False):
        self.delete_bookmarks_by_id([b.id for b in bookmarks], do_not_sync=do_not_sync)

    def delete_bookmarks_by_id(self, bookmark_ids, do_not_sync=False):
        bookmark_ids = list(bookmark_ids)
        with self._repository.transaction():
            self._repository.delete_bookmarks_by_id(bookmark_ids)
        logger.debug('Deleted bookmarks %s', bookmark_ids)
        self._publish(BookmarksDeletedEvent(bookmark_ids), do_not_sync)

    def save_bookmark_note(self, bookmark_id, note, do_not_sync=False):
        with self._repository.transaction():
            bookmark = self._repository.save_note(bookmark_id, note)
            if bookmark is None:
                raise NotFound(f'Bookmark {bookmark_id} not found', bookmark_id)
        self._publish(
            BookmarkAddedOrUpdatedEvent(bookmark, self._label_ids(bookmark_id)),
            do_not_sync,
        )
        return bookmark

    def update_bookmark_settings(self, verse, settings):
        """Store new playback settings on the speak bookmark at ``verse``.

        Only bookmarks that already carry playback settings are touched.
        Returns the updated bookmark, or None when there was nothing to do.
        """
        bookmark = self.speak_bookmark_for_verse(verse.normalized())
        if bookmark is None or bookmark.playback_settings is None:
            return None
        bookmark.playback_settings = dict(settings)
        bookmark = self.add_or_update_bookmark(bookmark)
        logger.debug('Updated playback settings of bookmark %s', bookmark.id)
        return bookmark

    # ------------------------------------------------------------------
    # Bookmark queries
    # ------------------------------------------------------------------

    def _order(self, order):
        return BookmarkSortOrder.parse(order, default=self.default_order)

    def all_bookmarks(self, order=None):
        return self._repository.all_bookmarks(self._order(order))

    def all_bookmarks_with_notes(self, order=None):
        return self._repository.all_bookmarks_with_notes(self._order(order))

    def bookmark_by_id(self, bookmark_id):
        return self._repository.bookmark_by_id(bookmark_id)

    def bookmarks_by_ids(self, bookmark_ids):
        return self._repository.bookmarks_by_ids(bookmark_ids)

    def has_bookmarks_for_verse(self, verse):
        return self._repository.has_bookmarks_at(verse)

    def first_bookmark_starting_at_verse(self, verse):
        bookmarks = self._repository.bookmarks_starting_at(verse)
        return bookmarks[0] if bookmarks else None

    def bookmarks_in_book(self, book):
        return self._repository.bookmarks_in_book(canonical_book_name(book))

    def bookmarks_for_verse_range(self, verse_range):
        return self._repository.bookmarks_in_range(verse_range)

    def get_bookmarks_with_label(self, label, order=None):
        order = self._order(order)
        if isinstance(label, VirtualLabel):
            if label.kind is LabelKind.ALL:
                return self._repository.all_bookmarks(order)
            return self._repository.unlabelled_bookmarks(order)
        return self._repository.bookmarks_with_label(label, order)

    # ------------------------------------------------------------------
    # Bookmark labels
    # ------------------------------------------------------------------

    def labels_for_bookmark(self, bookmark):
        return self._repository.labels_for_bookmark(bookmark.id)

    def labels_for_bookmark_id(self, bookmark_id):
        return self._repository.labels_for_bookmark(bookmark_id)

    def set_labels_for_bookmark(self, bookmark, labels, do_not_sync=False):
        """Move the bookmark's labels to ``labels`` with the fewest row changes.

        Returns the applied ``LabelDelta``.
        """
        with self._repository.transaction():
            current = self._repository.labels_for_bookmark(bookmark.id)
            delta = reconcile_labels(bookmark, current, labels)
            if delta.to_remove:
                self._repository.delete_associations(
                    [(bookmark.id, label.id) for label in delta.to_remove]
                )
            if delta.to_add:
                self._repository.insert_associations(
                    [(bookmark.id, label.id) for label in delta.to_add]
                )
        logger.debug(
            'Bookmark %s labels: +%s -%s', bookmark.id,
            sorted(l.id for l in delta.to_add), sorted(l.id for l in delta.to_remove),
        )
        self._publish(
            BookmarkAddedOrUpdatedEvent(bookmark, self._label_ids(bookmark.id)),
            do_not_sync,
        )
        return delta

    def set_label_ids_for_bookmark(self, bookmark, label_ids, do_not_sync=False):
        """Replace the bookmark's labels with ``label_ids`` without diffing."""
        if not bookmark.id:
            raise UnpersistedLabel('Bookmark must be saved before labels are assigned')
        with self._repository.transaction():
            label_ids = self._replace_label_ids(bookmark.id, label_ids)
        self._publish(BookmarkAddedOrUpdatedEvent(bookmark, label_ids), do_not_sync)
        return label_ids

    def _replace_label_ids(self, bookmark_id, label_ids):
        ids = []
        for label_id in label_ids:
            if label_id and label_id > 0 and label_id not in ids:
                ids.append(label_id)
        found = {label.id for label in self._repository.labels_by_ids(ids)}
        missing = [label_id for label_id in ids if label_id not in found]
        if missing:
            raise NotFound(f'Label {missing[0]} not found', missing[0])
        self._repository.clear_associations_for_bookmark(bookmark_id)
        self._repository.insert_associations([(bookmark_id, label_id) for label_id in ids])
        return ids

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    @property
    def all_labels(self):
        """Virtual labels first, then every persisted label by name."""
        return [LABEL_ALL, LABEL_UNLABELLED] + self.assignable_labels

    @property
    def assignable_labels(self):
        return self._repository.all_labels_sorted_by_name()

    def label_by_id(self, label_id):
        return self._repository.label_by_id(label_id)

    def insert_or_update_label(self, label, do_not_sync=False):
        if isinstance(label, VirtualLabel):
            raise InvalidIdentity(f'{label.name} is a virtual label', label.id)
        if label.id is not None and label.id < 0:
            raise InvalidIdentity(f'Illegal negative label id {label.id}', label.id)
        if not label.name:
            raise ValueError('Label name must not be empty')
        with self._repository.transaction():
            if label.id:
                label = self._repository.update_label(label)
            else:
                self._repository.insert_label(label)
        self._publish(LabelAddedOrUpdatedEvent(label), do_not_sync)
        return label

    def delete_label(self, label, do_not_sync=False):
        if isinstance(label, VirtualLabel) or (label.id is not None and label.id < 0):
            raise InvalidIdentity(f'Cannot delete label {label.id}', label.id)
        self.delete_labels([label.id], do_not_sync=do_not_sync)

    def delete_labels(self, label_ids, do_not_sync=False):
        label_ids = list(label_ids)
        if any(i is not None and i < 0 for i in label_ids):
            raise InvalidIdentity('Virtual labels cannot be deleted')
        speak = self._speak_label.cached
        with self._repository.transaction():
            self._repository.delete_labels_by_id(label_ids)
        if speak is not None and speak.id in label_ids:
            self._speak_label.reset()
        logger.debug('Deleted labels %s', label_ids)
        self._publish(LabelsDeletedEvent(label_ids), do_not_sync)

    # ------------------------------------------------------------------
    # Speak label
    # ------------------------------------------------------------------

    @property
    def speak_label(self):
        return self._speak_label.resolve()

    @property
    def speak_label_resolver(self):
        return self._speak_label

    def is_speak_bookmark(self, bookmark):
        return self.speak_label in self.labels_for_bookmark(bookmark)

    def speak_bookmark_for_verse(self, verse):
        bookmarks = self._repository.bookmarks_for_verse_start_with_label(verse, self.speak_label)
        return bookmarks[0] if bookmarks else None

    def reset(self):
        self._speak_label.reset()
