"""Verse addressing for the 66-book canon.

Bookmarks only need to know where a verse sits in canonical order, so each
verse maps to an integer ordinal:

    book_index * 1_000_000 + chapter * 1_000 + verse

Ordinals sort in Bible order and make range overlap a pair of integer
comparisons.
"""

import re
from dataclasses import dataclass

BOOKS = (
    'Genesis', 'Exodus', 'Leviticus', 'Numbers', 'Deuteronomy', 'Joshua',
    'Judges', 'Ruth', '1 Samuel', '2 Samuel', '1 Kings', '2 Kings',
    '1 Chronicles', '2 Chronicles', 'Ezra', 'Nehemiah', 'Esther', 'Job',
    'Psalms', 'Proverbs', 'Ecclesiastes', 'Song of Solomon', 'Isaiah',
    'Jeremiah', 'Lamentations', 'Ezekiel', 'Daniel', 'Hosea', 'Joel', 'Amos',
    'Obadiah', 'Jonah', 'Micah', 'Nahum', 'Habakkuk', 'Zephaniah', 'Haggai',
    'Zechariah', 'Malachi',
    'Matthew', 'Mark', 'Luke', 'John', 'Acts', 'Romans', '1 Corinthians',
    '2 Corinthians', 'Galatians', 'Ephesians', 'Philippians', 'Colossians',
    '1 Thessalonians', '2 Thessalonians', '1 Timothy', '2 Timothy', 'Titus',
    'Philemon', 'Hebrews', 'James', '1 Peter', '2 Peter', '1 John', '2 John',
    '3 John', 'Jude', 'Revelation',
)

_BOOK_INDEX = {name.lower(): i + 1 for i, name in enumerate(BOOKS)}

BOOK_FACTOR = 1_000_000
CHAPTER_FACTOR = 1_000

_REFERENCE_RE = re.compile(
    r'^\s*(?P<book>.+?)\s+(?P<chapter>\d+):(?P<start>\d+)(?:\s*-\s*(?P<end>\d+))?\s*$'
)


def book_index(book: str) -> int:
    """1-based canonical position of a book name (case-insensitive)."""
    try:
        return _BOOK_INDEX[book.strip().lower()]
    except KeyError:
        raise ValueError(f'Unknown book: {book!r}') from None


def canonical_book_name(book: str) -> str:
    return BOOKS[book_index(book) - 1]


@dataclass(frozen=True, order=True)
class Verse:
    book: str
    chapter: int
    verse: int

    def __post_init__(self):
        object.__setattr__(self, 'book', canonical_book_name(self.book))
        if self.chapter < 1:
            raise ValueError('chapter must be >= 1')
        if self.verse < 0:
            raise ValueError('verse must be >= 0')

    @property
    def ordinal(self) -> int:
        return (book_index(self.book) * BOOK_FACTOR
                + self.chapter * CHAPTER_FACTOR
                + self.verse)

    def normalized(self) -> 'Verse':
        """Verse 0 is the chapter heading; treat it as the first verse."""
        if self.verse == 0:
            return Verse(self.book, self.chapter, 1)
        return self

    def __str__(self):
        return f'{self.book} {self.chapter}:{self.verse}'


@dataclass(frozen=True)
class VerseRange:
    start: Verse
    end: Verse

    def __post_init__(self):
        if self.end.ordinal < self.start.ordinal:
            raise ValueError(f'Range end {self.end} precedes start {self.start}')

    @classmethod
    def single(cls, verse: Verse) -> 'VerseRange':
        return cls(verse, verse)

    @classmethod
    def within_chapter(cls, book, chapter, start_verse, end_verse=None) -> 'VerseRange':
        start = Verse(book, chapter, start_verse)
        end = Verse(book, chapter, end_verse if end_verse is not None else start_verse)
        return cls(start, end)

    @classmethod
    def parse(cls, reference: str) -> 'VerseRange':
        """Parse ``"Book C:V"`` or ``"Book C:V-W"``."""
        match = _REFERENCE_RE.match(reference or '')
        if not match:
            raise ValueError(f'Cannot parse reference: {reference!r}')
        return cls.within_chapter(
            match.group('book'),
            int(match.group('chapter')),
            int(match.group('start')),
            int(match.group('end')) if match.group('end') else None,
        )

    @property
    def ordinal_start(self) -> int:
        return self.start.ordinal

    @property
    def ordinal_end(self) -> int:
        return self.end.ordinal

    def contains(self, verse: Verse) -> bool:
        return self.ordinal_start <= verse.ordinal <= self.ordinal_end

    def __str__(self):
        if self.start == self.end:
            return str(self.start)
        if self.start.book == self.end.book and self.start.chapter == self.end.chapter:
            return f'{self.start}-{self.end.verse}'
        return f'{self.start}-{self.end}'
