from flask import Blueprint, request, jsonify
from versemarks import get_bookmark_control
from versemarks.api.labels import label_to_dict, parse_ids
from versemarks.errors import NotFound
from versemarks.middleware.auth import require_auth
from versemarks.models import Bookmark
from versemarks.services.labels import virtual_label_for_id
from versemarks.services.versification import Verse, VerseRange

bp = Blueprint('bookmarks', __name__, url_prefix='/api/bookmarks')


def _bookmark_to_dict(bookmark, label_ids=None):
    data = {
        'id': bookmark.id,
        'reference': str(bookmark.verse_range),
        'book': bookmark.book,
        'chapter': bookmark.chapter,
        'start_verse': bookmark.start_verse,
        'end_chapter': bookmark.end_chapter,
        'end_verse': bookmark.end_verse,
        'notes': bookmark.notes,
        'playback_settings': bookmark.playback_settings,
        'created_at': bookmark.created_at.isoformat() if bookmark.created_at else None,
        'last_updated_on': bookmark.last_updated_on.isoformat() if bookmark.last_updated_on else None,
    }
    if label_ids is not None:
        data['label_ids'] = label_ids
    return data


def _verse_range_from(data):
    """Read an anchor from either ``reference`` or book/chapter/verse fields."""
    if data.get('reference'):
        return VerseRange.parse(data['reference'])
    start = Verse(data['book'], int(data['chapter']), int(data['start_verse']))
    end = Verse(
        data['book'],
        int(data.get('end_chapter') or data['chapter']),
        int(data.get('end_verse') or data['start_verse']),
    )
    return VerseRange(start, end)


def _get_bookmark_or_404(bookmark_id):
    bookmark = get_bookmark_control().bookmark_by_id(bookmark_id)
    if bookmark is None:
        raise NotFound(f'Bookmark {bookmark_id} not found', bookmark_id)
    return bookmark


def _label_ids(bookmark):
    return [l.id for l in get_bookmark_control().labels_for_bookmark(bookmark)]


@bp.route('', methods=['GET'])
@require_auth
def list_bookmarks():
    """List bookmarks.

    Filters (at most one is applied, in this order): ``label_id`` (the
    virtual ids -999/-998 select All/Unlabelled), ``reference`` (overlap),
    ``book``, ``with_notes=1``. ``order`` is bible_order, created_at or
    last_updated.
    """
    control = get_bookmark_control()
    order = request.args.get('order')

    try:
        if request.args.get('label_id') is not None:
            label_id = int(request.args['label_id'])
            label = virtual_label_for_id(label_id) or control.label_by_id(label_id)
            if label is None:
                return jsonify({'error': 'Label not found'}), 404
            bookmarks = control.get_bookmarks_with_label(label, order)
        elif request.args.get('reference'):
            bookmarks = control.bookmarks_for_verse_range(VerseRange.parse(request.args['reference']))
        elif request.args.get('book'):
            bookmarks = control.bookmarks_in_book(request.args['book'])
        elif request.args.get('with_notes') in ('1', 'true'):
            bookmarks = control.all_bookmarks_with_notes(order)
        else:
            bookmarks = control.all_bookmarks(order)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({'bookmarks': [_bookmark_to_dict(b) for b in bookmarks]})


@bp.route('', methods=['POST'])
@require_auth
def create_bookmark():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Request body is required'}), 400

    try:
        verse_range = _verse_range_from(data)
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({'error': f'A valid verse reference is required: {e}'}), 400

    label_ids = data.get('label_ids')
    if label_ids is not None:
        try:
            label_ids = parse_ids(label_ids)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    bookmark = Bookmark(
        verse_range,
        notes=data.get('notes'),
        playback_settings=data.get('playback_settings'),
    )
    control = get_bookmark_control()
    bookmark = control.add_or_update_bookmark(bookmark, label_ids=label_ids)
    return jsonify({'bookmark': _bookmark_to_dict(bookmark, _label_ids(bookmark))}), 201


@bp.route('/verse', methods=['POST'])
@require_auth
def bookmark_verse():
    """Bookmark a verse range, or refresh the date of the one already there."""
    data = request.get_json(silent=True) or {}
    try:
        verse_range = VerseRange.parse(data.get('reference'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    bookmark = get_bookmark_control().add_bookmark_for_verse_range(verse_range)
    return jsonify({'bookmark': _bookmark_to_dict(bookmark, _label_ids(bookmark))})


@bp.route('/verse', methods=['DELETE'])
@require_auth
def unbookmark_verse():
    try:
        verse_range = VerseRange.parse(request.args.get('reference'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    deleted_id = get_bookmark_control().delete_bookmark_for_verse_range(verse_range)
    return jsonify({'ok': True, 'deleted_id': deleted_id})


@bp.route('/settings', methods=['PUT'])
@require_auth
def update_playback_settings():
    """Update playback settings of the speak bookmark at a verse."""
    data = request.get_json(silent=True) or {}
    settings = data.get('settings')
    if not isinstance(settings, dict):
        return jsonify({'error': 'settings must be an object'}), 400
    try:
        verse = VerseRange.parse(data.get('reference')).start
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    bookmark = get_bookmark_control().update_bookmark_settings(verse, settings)
    if bookmark is None:
        return jsonify({'ok': True, 'bookmark': None})
    return jsonify({'ok': True, 'bookmark': _bookmark_to_dict(bookmark)})


@bp.route('/delete', methods=['POST'])
@require_auth
def delete_bookmarks():
    data = request.get_json(silent=True) or {}
    ids = data.get('ids')
    if not isinstance(ids, list) or not ids:
        return jsonify({'error': 'ids must be a non-empty list'}), 400

    try:
        ids = parse_ids(ids)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    get_bookmark_control().delete_bookmarks_by_id(ids)
    return jsonify({'ok': True})


@bp.route('/<int:bookmark_id>', methods=['GET'])
@require_auth
def get_bookmark(bookmark_id):
    bookmark = _get_bookmark_or_404(bookmark_id)
    labels = get_bookmark_control().labels_for_bookmark(bookmark)
    data = _bookmark_to_dict(bookmark, [l.id for l in labels])
    data['labels'] = [label_to_dict(l) for l in labels]
    return jsonify({'bookmark': data})


@bp.route('/<int:bookmark_id>', methods=['PATCH'])
@require_auth
def update_bookmark(bookmark_id):
    """Update anchor, notes or playback settings."""
    bookmark = _get_bookmark_or_404(bookmark_id)
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Request body is required'}), 400

    if 'reference' in data:
        try:
            bookmark.verse_range = VerseRange.parse(data['reference'])
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
    if 'notes' in data:
        bookmark.notes = data['notes']
    if 'playback_settings' in data:
        bookmark.playback_settings = data['playback_settings']

    bookmark = get_bookmark_control().add_or_update_bookmark(bookmark)
    return jsonify({'bookmark': _bookmark_to_dict(bookmark, _label_ids(bookmark))})


@bp.route('/<int:bookmark_id>', methods=['DELETE'])
@require_auth
def delete_bookmark(bookmark_id):
    bookmark = _get_bookmark_or_404(bookmark_id)
    get_bookmark_control().delete_bookmark(bookmark)
    return jsonify({'ok': True})


@bp.route('/<int:bookmark_id>/labels', methods=['PUT'])
@require_auth
def set_bookmark_labels(bookmark_id):
    """Replace a bookmark's labels.

    ``labels`` (a list of label ids) goes through the diffing path and
    reports what changed; ``label_ids`` clears and reinserts.
    """
    control = get_bookmark_control()
    bookmark = _get_bookmark_or_404(bookmark_id)
    data = request.get_json(silent=True) or {}

    field = next((f for f in ('labels', 'label_ids') if f in data), None)
    if field is None:
        return jsonify({'error': 'labels or label_ids is required'}), 400
    try:
        requested = parse_ids(data[field])
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if field == 'labels':
        labels = []
        for label_id in requested:
            label = virtual_label_for_id(label_id) or control.label_by_id(label_id)
            if label is None:
                raise NotFound(f'Label {label_id} not found', label_id)
            labels.append(label)
        delta = control.set_labels_for_bookmark(bookmark, labels)
        return jsonify({
            'label_ids': _label_ids(bookmark),
            'added': sorted(l.id for l in delta.to_add),
            'removed': sorted(l.id for l in delta.to_remove),
        })

    label_ids = control.set_label_ids_for_bookmark(bookmark, requested)
    return jsonify({'label_ids': label_ids})


@bp.route('/<int:bookmark_id>/note', methods=['PUT'])
@require_auth
def save_note(bookmark_id):
    data = request.get_json(silent=True)
    if data is None or 'note' not in data:
        return jsonify({'error': 'note is required'}), 400

    bookmark = get_bookmark_control().save_bookmark_note(bookmark_id, data['note'])
    return jsonify({'bookmark': _bookmark_to_dict(bookmark)})
