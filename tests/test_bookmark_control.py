from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from versemarks.errors import InvalidIdentity, NotFound, StorageFailure, UnpersistedLabel
from versemarks.models import Bookmark, BookmarkToLabel, Label
from versemarks.services.events import (
    BookmarkAddedOrUpdatedEvent,
    BookmarksDeletedEvent,
    LabelAddedOrUpdatedEvent,
    LabelsDeletedEvent,
)
from versemarks.services.labels import LABEL_ALL, LABEL_UNLABELLED
from versemarks.services.repository import BookmarkSortOrder
from versemarks.services.versification import Verse, VerseRange


def _add(control, reference, **kwargs):
    return control.add_or_update_bookmark(Bookmark(VerseRange.parse(reference), **kwargs))


def _label(control, name):
    return control.insert_or_update_label(Label(name=name))


def _ids(items):
    return [i.id for i in items]


class TestScenario:
    def test_bookmark_label_lifecycle(self, control, recorder):
        b1 = _add(control, 'Genesis 1:1')
        assert b1.id > 0
        assert recorder.events == [BookmarkAddedOrUpdatedEvent(b1, [])]

        faith = _label(control, 'Faith')
        assert recorder.events[-1] == LabelAddedOrUpdatedEvent(faith)

        delta = control.set_labels_for_bookmark(b1, [faith])
        assert _ids(delta.to_add) == [faith.id]
        assert delta.to_remove == frozenset()
        assert _ids(control.labels_for_bookmark(b1)) == [faith.id]
        assert recorder.events[-1] == BookmarkAddedOrUpdatedEvent(b1, [faith.id])

        control.delete_label(faith)
        assert control.labels_for_bookmark(b1) == []
        assert b1.id in _ids(control.get_bookmarks_with_label(LABEL_UNLABELLED))
        assert recorder.events[-1] == LabelsDeletedEvent([faith.id])
        assert len(recorder.events) == 4


class TestBookmarks:
    def test_update_existing_bookmark(self, control, recorder):
        b = _add(control, 'John 3:16')
        b.notes = 'For God so loved'
        updated = control.add_or_update_bookmark(b)

        assert updated.id == b.id
        assert control.bookmark_by_id(b.id).notes == 'For God so loved'
        assert len(recorder.of_type(BookmarkAddedOrUpdatedEvent)) == 2

    def test_update_of_missing_bookmark_raises_not_found(self, control, recorder):
        ghost = Bookmark(VerseRange.parse('John 3:16'), id=4242)

        with pytest.raises(NotFound):
            control.add_or_update_bookmark(ghost)

        assert control.bookmark_by_id(4242) is None
        assert recorder.events == []

    def test_add_with_label_ids_replaces_labels(self, control, recorder):
        a = _label(control, 'A')
        b = _label(control, 'B')
        bookmark = control.add_or_update_bookmark(
            Bookmark(VerseRange.parse('Psalms 23:1')), label_ids=[a.id, b.id, -999, a.id]
        )

        assert sorted(_ids(control.labels_for_bookmark(bookmark))) == sorted([a.id, b.id])
        assert recorder.events[-1].label_ids == [a.id, b.id]

    def test_do_not_sync_publishes_nothing(self, control, recorder):
        b = control.add_or_update_bookmark(Bookmark(VerseRange.parse('Genesis 1:1')), do_not_sync=True)
        label = control.insert_or_update_label(Label(name='Quiet'), do_not_sync=True)
        control.set_labels_for_bookmark(b, [label], do_not_sync=True)
        control.set_label_ids_for_bookmark(b, [], do_not_sync=True)
        control.save_bookmark_note(b.id, 'n', do_not_sync=True)
        control.delete_label(label, do_not_sync=True)
        control.delete_bookmark(b, do_not_sync=True)

        assert recorder.events == []

    def test_delete_variants_publish_one_event_each(self, control, recorder):
        b1 = _add(control, 'Genesis 1:1')
        b2 = _add(control, 'Genesis 1:2')
        b3 = _add(control, 'Genesis 1:3')
        b4 = _add(control, 'Genesis 1:4')
        recorder.clear()

        control.delete_bookmark(b1)
        control.delete_bookmarks([b2, b3])
        control.delete_bookmarks_by_id([b4.id])

        assert recorder.events == [
            BookmarksDeletedEvent([b1.id]),
            BookmarksDeletedEvent([b2.id, b3.id]),
            BookmarksDeletedEvent([b4.id]),
        ]
        assert control.all_bookmarks() == []

    def test_delete_bookmark_removes_associations(self, db, control):
        label = _label(control, 'Hope')
        b = _add(control, 'Romans 5:5')
        control.set_labels_for_bookmark(b, [label])

        control.delete_bookmark(b)

        assert BookmarkToLabel.query.count() == 0
        assert control.label_by_id(label.id) is not None

    def test_save_note(self, control, recorder):
        label = _label(control, 'Love')
        b = _add(control, '1 Corinthians 13:4')
        control.set_labels_for_bookmark(b, [label])
        recorder.clear()

        saved = control.save_bookmark_note(b.id, 'Love is patient')

        assert saved.notes == 'Love is patient'
        assert recorder.events == [BookmarkAddedOrUpdatedEvent(saved, [label.id])]

    def test_save_note_on_missing_bookmark(self, control, recorder):
        with pytest.raises(NotFound):
            control.save_bookmark_note(999, 'gone')
        assert recorder.events == []

    def test_storage_failure_is_wrapped_and_not_published(self, db, control, recorder):
        with patch.object(db.session, 'commit', side_effect=OperationalError('COMMIT', {}, Exception('disk I/O error'))):
            with pytest.raises(StorageFailure):
                _add(control, 'Genesis 1:1')

        assert recorder.events == []
        assert control.all_bookmarks() == []

    def test_subscriber_failure_does_not_fail_the_mutation(self, app, control, recorder):
        def broken(event):
            raise RuntimeError('view crashed')

        app.extensions['event_bus'].subscribe(broken)
        b = _add(control, 'Genesis 1:1')

        assert control.bookmark_by_id(b.id) is not None
        assert len(recorder.events) == 1


class TestVerseOperations:
    def test_add_bookmark_for_verse_range_creates_then_touches(self, control, recorder):
        verse_range = VerseRange.parse('Genesis 1:1-3')
        first = control.add_bookmark_for_verse_range(verse_range)
        second = control.add_bookmark_for_verse_range(verse_range)

        assert first.id == second.id
        assert len(control.all_bookmarks()) == 1
        assert [type(e) for e in recorder.events] == [BookmarkAddedOrUpdatedEvent] * 2
        assert recorder.events[0].label_ids == []

    def test_delete_bookmark_for_verse_range(self, control, recorder):
        b = _add(control, 'Genesis 1:1')
        recorder.clear()

        assert control.delete_bookmark_for_verse_range(VerseRange.parse('Genesis 1:1-2')) == b.id
        assert recorder.events == [BookmarksDeletedEvent([b.id])]

    def test_delete_bookmark_for_empty_verse_range(self, control, recorder):
        assert control.delete_bookmark_for_verse_range(VerseRange.parse('Genesis 2:1')) is None
        assert recorder.events == []

    def test_first_bookmark_starting_at_verse(self, control):
        assert control.first_bookmark_starting_at_verse(Verse('Genesis', 1, 1)) is None
        first = _add(control, 'Genesis 1:1')
        _add(control, 'Genesis 1:1-5')
        assert control.first_bookmark_starting_at_verse(Verse('Genesis', 1, 1)).id == first.id

    def test_has_bookmarks_for_verse_covers_whole_range(self, control):
        _add(control, 'Genesis 1:1-3')
        assert control.has_bookmarks_for_verse(Verse('Genesis', 1, 2))
        assert not control.has_bookmarks_for_verse(Verse('Genesis', 1, 4))

    def test_bookmarks_for_verse_range_overlap(self, control):
        a = _add(control, 'Genesis 1:1-3')
        b = _add(control, 'Genesis 1:5')
        _add(control, 'Genesis 2:1')

        found = control.bookmarks_for_verse_range(VerseRange.parse('Genesis 1:3-5'))
        assert _ids(found) == [a.id, b.id]

    def test_bookmarks_in_book(self, control):
        g = _add(control, 'Genesis 1:1')
        _add(control, 'Exodus 1:1')
        assert _ids(control.bookmarks_in_book('genesis')) == [g.id]

    def test_bookmarks_by_ids(self, control):
        a = _add(control, 'Genesis 1:1')
        b = _add(control, 'Genesis 1:2')
        _add(control, 'Genesis 1:3')
        assert _ids(control.bookmarks_by_ids([b.id, a.id])) == [a.id, b.id]

    def test_all_bookmarks_with_notes(self, control):
        _add(control, 'Genesis 1:1')
        noted = _add(control, 'Genesis 1:2', notes='light')
        assert _ids(control.all_bookmarks_with_notes()) == [noted.id]


class TestLabelAssignment:
    def test_set_labels_is_idempotent(self, control):
        a = _label(control, 'A')
        b = _label(control, 'B')
        bm = _add(control, 'Genesis 1:1')

        control.set_labels_for_bookmark(bm, [a, b])
        second = control.set_labels_for_bookmark(bm, [a, b])

        assert second.is_empty

    def test_set_labels_reaches_desired_set(self, control):
        a, b, c = (_label(control, n) for n in 'ABC')
        bm = _add(control, 'Genesis 1:1')
        control.set_labels_for_bookmark(bm, [a, b])

        delta = control.set_labels_for_bookmark(bm, [b, c, LABEL_ALL])

        assert _ids(delta.to_add) == [c.id]
        assert _ids(delta.to_remove) == [a.id]
        assert sorted(_ids(control.labels_for_bookmark(bm))) == sorted([b.id, c.id])

    def test_event_carries_full_label_set(self, control, recorder):
        a, b = _label(control, 'A'), _label(control, 'B')
        bm = _add(control, 'Genesis 1:1')
        control.set_labels_for_bookmark(bm, [a])
        control.set_labels_for_bookmark(bm, [a, b])

        assert sorted(recorder.events[-1].label_ids) == sorted([a.id, b.id])

    def test_unsaved_label_is_rejected_without_changes(self, control, recorder):
        a = _label(control, 'A')
        bm = _add(control, 'Genesis 1:1')
        control.set_labels_for_bookmark(bm, [a])
        recorder.clear()

        with pytest.raises(UnpersistedLabel):
            control.set_labels_for_bookmark(bm, [Label(name='not saved')])

        assert _ids(control.labels_for_bookmark(bm)) == [a.id]
        assert recorder.events == []

    def test_set_label_ids_clears_and_reinserts(self, control, recorder):
        a, b = _label(control, 'A'), _label(control, 'B')
        bm = _add(control, 'Genesis 1:1')
        control.set_labels_for_bookmark(bm, [a])

        ids = control.set_label_ids_for_bookmark(bm, [b.id, LABEL_UNLABELLED.id])

        assert ids == [b.id]
        assert _ids(control.labels_for_bookmark(bm)) == [b.id]
        assert recorder.events[-1] == BookmarkAddedOrUpdatedEvent(bm, [b.id])

    def test_set_label_ids_rejects_unknown_labels(self, control, recorder):
        a = _label(control, 'A')
        bm = _add(control, 'Genesis 1:1')
        control.set_labels_for_bookmark(bm, [a])
        recorder.clear()

        with pytest.raises(NotFound):
            control.set_label_ids_for_bookmark(bm, [a.id, 12345])

        assert _ids(control.labels_for_bookmark(bm)) == [a.id]
        assert recorder.events == []

    def test_unknown_label_id_does_not_leave_bookmark_half_labelled(self, control):
        bm = _add(control, 'Genesis 1:1')

        with pytest.raises(NotFound):
            control.set_label_ids_for_bookmark(bm, [12345])

        unlabelled = _ids(control.get_bookmarks_with_label(LABEL_UNLABELLED))
        assert control.labels_for_bookmark(bm) == []
        assert bm.id in unlabelled

    def test_set_label_ids_on_unsaved_bookmark(self, control, recorder):
        a = _label(control, 'A')
        recorder.clear()

        with pytest.raises(UnpersistedLabel):
            control.set_label_ids_for_bookmark(Bookmark(VerseRange.parse('Genesis 1:1')), [a.id])
        assert recorder.events == []

    def test_labels_for_bookmark_sorted_case_insensitively(self, control):
        labels = [_label(control, n) for n in ('beta', 'Gamma', 'alpha')]
        bm = _add(control, 'Genesis 1:1')
        control.set_labels_for_bookmark(bm, labels)

        assert [l.name for l in control.labels_for_bookmark(bm)] == ['alpha', 'beta', 'Gamma']

    def test_links_to_missing_rows_are_refused_by_the_database(self, db, control):
        bm = _add(control, 'Genesis 1:1')
        db.session.add(BookmarkToLabel(bookmark_id=bm.id, label_id=999))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()


class TestVirtualLabelOverlay:
    def test_all_labels_starts_with_virtual_labels_when_empty(self, control):
        assert control.all_labels == [LABEL_ALL, LABEL_UNLABELLED]

    def test_all_labels_then_persisted_by_name(self, control):
        for name in ('gamma', 'Alpha', 'beta'):
            _label(control, name)

        labels = control.all_labels

        assert labels[:2] == [LABEL_ALL, LABEL_UNLABELLED]
        assert [l.name for l in labels[2:]] == ['Alpha', 'beta', 'gamma']
        assert [l.name for l in control.assignable_labels] == ['Alpha', 'beta', 'gamma']

    def test_all_returns_every_bookmark_in_bible_order(self, control):
        ex = _add(control, 'Exodus 1:1')
        gen = _add(control, 'Genesis 1:1')
        assert _ids(control.get_bookmarks_with_label(LABEL_ALL)) == [gen.id, ex.id]

    def test_all_honours_requested_order(self, control):
        ex = _add(control, 'Exodus 1:1', created_at=datetime(2021, 1, 1))
        gen = _add(control, 'Genesis 1:1', created_at=datetime(2020, 1, 1))
        found = control.get_bookmarks_with_label(LABEL_ALL, BookmarkSortOrder.CREATED_AT)
        assert _ids(found) == [ex.id, gen.id]

    def test_unlabelled_is_exactly_bookmarks_without_labels(self, control):
        label = _label(control, 'Grace')
        bookmarks = [_add(control, f'Genesis 1:{v}') for v in range(1, 5)]
        control.set_labels_for_bookmark(bookmarks[1], [label])
        control.set_label_ids_for_bookmark(bookmarks[3], [label.id])

        unlabelled = set(_ids(control.get_bookmarks_with_label(LABEL_UNLABELLED)))

        for b in bookmarks:
            assert (b.id in unlabelled) == (control.labels_for_bookmark(b) == [])

    def test_persisted_label_returns_joined_bookmarks(self, control):
        label = _label(control, 'Grace')
        a = _add(control, 'Genesis 1:1')
        _add(control, 'Genesis 1:2')
        control.set_labels_for_bookmark(a, [label])

        assert _ids(control.get_bookmarks_with_label(label)) == [a.id]


class TestLabels:
    def test_update_label(self, control, recorder):
        label = _label(control, 'Old')
        label.name = 'New'
        control.insert_or_update_label(label)

        assert control.label_by_id(label.id).name == 'New'
        assert len(recorder.of_type(LabelAddedOrUpdatedEvent)) == 2

    @pytest.mark.parametrize('label', [
        Label(id=-999, name='All'),
        Label(id=-5, name='Negative'),
        LABEL_ALL,
        LABEL_UNLABELLED,
    ])
    def test_negative_ids_are_rejected(self, control, recorder, label):
        with pytest.raises(InvalidIdentity):
            control.insert_or_update_label(label)
        assert recorder.events == []

    def test_virtual_labels_cannot_be_deleted(self, control):
        with pytest.raises(InvalidIdentity):
            control.delete_label(LABEL_ALL)
        with pytest.raises(InvalidIdentity):
            control.delete_labels([LABEL_UNLABELLED.id])

    def test_update_of_missing_label_raises_not_found(self, control, recorder):
        with pytest.raises(NotFound):
            control.insert_or_update_label(Label(id=4242, name='Ghost'))

        assert control.label_by_id(4242) is None
        assert recorder.events == []

    def test_id_zero_means_new(self, control):
        label = control.insert_or_update_label(Label(id=0, name='Fresh'))
        assert label.id > 0

    def test_delete_labels_bulk(self, control, recorder):
        a, b, c = (_label(control, n) for n in 'ABC')
        bm = _add(control, 'Genesis 1:1')
        control.set_labels_for_bookmark(bm, [a, b, c])
        recorder.clear()

        control.delete_labels([a.id, b.id])

        assert _ids(control.labels_for_bookmark(bm)) == [c.id]
        assert recorder.events == [LabelsDeletedEvent([a.id, b.id])]


class TestSpeakBookmarks:
    def test_speak_label_is_cached_per_control(self, control):
        assert control.speak_label.id == control.speak_label.id

    def test_is_speak_bookmark(self, control):
        bm = _add(control, 'Genesis 1:1')
        assert not control.is_speak_bookmark(bm)
        control.set_labels_for_bookmark(bm, [control.speak_label])
        assert control.is_speak_bookmark(bm)
        assert control.speak_bookmark_for_verse(Verse('Genesis', 1, 1)).id == bm.id

    def test_update_bookmark_settings(self, control, recorder):
        bm = control.add_or_update_bookmark(
            Bookmark(VerseRange.parse('Genesis 1:1'), playback_settings={'speed': 100}),
            label_ids=[control.speak_label.id],
        )
        recorder.clear()

        updated = control.update_bookmark_settings(Verse('Genesis', 1, 0), {'speed': 150, 'pitch': 90})

        assert updated.id == bm.id
        assert control.bookmark_by_id(bm.id).playback_settings == {'speed': 150, 'pitch': 90}
        assert len(recorder.events) == 1

    def test_update_bookmark_settings_without_existing_settings(self, control, recorder):
        control.add_or_update_bookmark(
            Bookmark(VerseRange.parse('Genesis 1:1')), label_ids=[control.speak_label.id],
        )
        recorder.clear()

        assert control.update_bookmark_settings(Verse('Genesis', 1, 1), {'speed': 150}) is None
        assert recorder.events == []

    def test_deleting_speak_label_resets_cache(self, control):
        first = control.speak_label
        control.delete_label(first)
        second = control.speak_label
        assert second.id != first.id

    def test_reset(self, control):
        label = control.speak_label
        control.reset()
        assert control.speak_label_resolver.cached is None
        assert control.speak_label.id == label.id
