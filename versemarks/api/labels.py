from flask import Blueprint, request, jsonify
from versemarks import get_bookmark_control
from versemarks.errors import InvalidIdentity, NotFound
from versemarks.middleware.auth import require_auth
from versemarks.models import Label
from versemarks.services.labels import is_virtual

bp = Blueprint('labels', __name__, url_prefix='/api/labels')


def label_to_dict(label):
    return {
        'id': label.id,
        'name': label.name,
        'color': label.color,
        'virtual': is_virtual(label),
    }


def parse_ids(values):
    """Integer ids from a JSON list, or ValueError."""
    if not isinstance(values, list):
        raise ValueError('ids must be a list')
    try:
        return [int(i) for i in values]
    except (TypeError, ValueError):
        raise ValueError(f'ids must be integers, got {values!r}')


@bp.route('', methods=['GET'])
@require_auth
def list_labels():
    """All and Unlabelled first, then every saved label by name.

    ``?assignable=1`` leaves out the virtual labels.
    """
    control = get_bookmark_control()
    if request.args.get('assignable') in ('1', 'true'):
        labels = control.assignable_labels
    else:
        labels = control.all_labels
    return jsonify({'labels': [label_to_dict(l) for l in labels]})


@bp.route('', methods=['POST'])
@require_auth
def create_label():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Request body is required'}), 400

    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name is required'}), 400

    label = Label(name=name, color=data.get('color', 0))
    label = get_bookmark_control().insert_or_update_label(label)
    return jsonify({'label': label_to_dict(label)}), 201


@bp.route('/<int(signed=True):label_id>', methods=['PATCH'])
@require_auth
def update_label(label_id):
    """Rename or recolour a label. Virtual label ids are rejected."""
    control = get_bookmark_control()
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Request body is required'}), 400

    if label_id < 0:
        label = Label(id=label_id, name=data.get('name', ''), color=data.get('color', 0))
    else:
        label = control.label_by_id(label_id)
        if label is None:
            raise NotFound(f'Label {label_id} not found', label_id)
        if 'name' in data:
            name = (data['name'] or '').strip()
            if not name:
                return jsonify({'error': 'name must not be empty'}), 400
            label.name = name
        if 'color' in data:
            label.color = data['color']

    label = control.insert_or_update_label(label)
    return jsonify({'label': label_to_dict(label)})


@bp.route('/<int(signed=True):label_id>', methods=['DELETE'])
@require_auth
def delete_label(label_id):
    """Delete a label; its bookmark associations go with it."""
    control = get_bookmark_control()
    if label_id < 0:
        raise InvalidIdentity(f'Virtual label {label_id} cannot be deleted', label_id)
    label = control.label_by_id(label_id)
    if label is None:
        return jsonify({'error': 'Label not found'}), 404

    control.delete_label(label)
    return jsonify({'ok': True})


@bp.route('/delete', methods=['POST'])
@require_auth
def delete_labels():
    data = request.get_json(silent=True) or {}
    ids = data.get('ids')
    if not isinstance(ids, list) or not ids:
        return jsonify({'error': 'ids must be a non-empty list'}), 400

    try:
        ids = parse_ids(ids)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    get_bookmark_control().delete_labels(ids)
    return jsonify({'ok': True})


@bp.route('/speak', methods=['GET'])
@require_auth
def speak_label():
    """The system label marking speech-playback bookmarks."""
    return jsonify({'label': label_to_dict(get_bookmark_control().speak_label)})
