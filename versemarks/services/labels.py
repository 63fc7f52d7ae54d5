"""Virtual labels and label-set reconciliation.

``All`` and ``Unlabelled`` are computed groupings, never rows. They carry the
sentinel ids -999 and -998 only so they can travel through JSON and id lists;
anything that decides what they mean matches on ``VirtualLabel.kind``.
"""

import enum
from dataclasses import dataclass
from typing import FrozenSet, Iterable

from versemarks.errors import UnpersistedLabel

LABEL_ALL_ID = -999
LABEL_UNLABELLED_ID = -998

# Highlight colours (ARGB) used for the two virtual labels.
GREEN_HIGHLIGHT = 0xFF77FF77
BLUE_HIGHLIGHT = 0xFF7777FF


class LabelKind(enum.Enum):
    ALL = 'all'
    UNLABELLED = 'unlabelled'


@dataclass(frozen=True)
class VirtualLabel:
    kind: LabelKind

    @property
    def id(self):
        return LABEL_ALL_ID if self.kind is LabelKind.ALL else LABEL_UNLABELLED_ID

    @property
    def name(self):
        return 'All' if self.kind is LabelKind.ALL else 'Unlabelled'

    @property
    def color(self):
        return GREEN_HIGHLIGHT if self.kind is LabelKind.ALL else BLUE_HIGHLIGHT

    is_new = False
    is_virtual = True


LABEL_ALL = VirtualLabel(LabelKind.ALL)
LABEL_UNLABELLED = VirtualLabel(LabelKind.UNLABELLED)

VIRTUAL_LABELS = (LABEL_ALL, LABEL_UNLABELLED)


def is_virtual(label) -> bool:
    return isinstance(label, VirtualLabel)


def virtual_label_for_id(label_id):
    """Return the virtual label carrying ``label_id``, or None."""
    for label in VIRTUAL_LABELS:
        if label.id == label_id:
            return label
    return None


@dataclass(frozen=True)
class LabelDelta:
    to_add: FrozenSet
    to_remove: FrozenSet

    @property
    def is_empty(self):
        return not self.to_add and not self.to_remove


def reconcile_labels(bookmark, current_labels: Iterable, desired_labels: Iterable) -> LabelDelta:
    """Compute the association changes that turn ``current`` into ``desired``.

    Virtual labels in ``desired_labels`` are dropped. Every remaining label,
    and the bookmark itself, must already have an id.
    """
    if not bookmark.id:
        raise UnpersistedLabel('Bookmark must be saved before labels are assigned')

    desired = set()
    for label in desired_labels:
        if is_virtual(label):
            continue
        if label.is_new:
            raise UnpersistedLabel(
                f'Label {label.name!r} must be saved before it is assigned', bookmark.id
            )
        desired.add(label)

    current = set(current_labels)
    return LabelDelta(
        to_add=frozenset(desired - current),
        to_remove=frozenset(current - desired),
    )
