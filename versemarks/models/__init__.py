from .bookmark import Bookmark
from .label import Label, BookmarkToLabel
from .preference import Preference

__all__ = [
    'Bookmark',
    'Label',
    'BookmarkToLabel',
    'Preference',
]
