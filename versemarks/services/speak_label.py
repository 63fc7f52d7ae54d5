"""Lazily resolved system label used to mark bookmarks for speech playback.

Resolution order, first hit wins:

1. the label id remembered in the preference store,
2. an existing label carrying the well-known name,
3. a freshly inserted label with that name.

The winner is cached until ``reset()``; for cases 2 and 3 its id is written
back to the preference store so the next process goes straight to case 1.
"""

import enum
import logging

from versemarks.models import Label

logger = logging.getLogger(__name__)

DEFAULT_SPEAK_LABEL_NAME = '__SPEAK_LABEL__'
DEFAULT_PREFERENCE_KEY = 'speak_label_id'


class ResolverState(enum.Enum):
    UNRESOLVED = 'unresolved'
    CACHED = 'cached'


class SpeakLabelResolver:
    def __init__(self, repository, preferences,
                 name=DEFAULT_SPEAK_LABEL_NAME,
                 preference_key=DEFAULT_PREFERENCE_KEY):
        self._repository = repository
        self._preferences = preferences
        self.name = name
        self.preference_key = preference_key
        self._state = ResolverState.UNRESOLVED
        self._label = None

    @property
    def state(self):
        return self._state

    @property
    def cached(self):
        return self._label

    def resolve(self) -> Label:
        if self._state is ResolverState.CACHED:
            return self._label

        label = self._from_preference()
        if label is None:
            with self._repository.transaction():
                label = self._repository.label_by_name(self.name)
                if label is None:
                    label = Label(name=self.name, color=0)
                    self._repository.insert_label(label)
                    logger.info('Created speak label %s (id=%s)', self.name, label.id)
                self._preferences.set_int64(self.preference_key, label.id)

        self._label = label
        self._state = ResolverState.CACHED
        return label

    def reset(self):
        """Forget the cached label. Storage is left untouched."""
        self._label = None
        self._state = ResolverState.UNRESOLVED

    def _from_preference(self):
        label_id = self._preferences.get_int64(self.preference_key)
        if label_id is None:
            return None
        return self._repository.label_by_id(label_id)
