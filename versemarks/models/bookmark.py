from datetime import datetime, timezone
from versemarks.extensions import db
from versemarks.services.versification import Verse, VerseRange


class Bookmark(db.Model):
    __tablename__ = 'bookmarks'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    book = db.Column(db.String(50), nullable=False)
    chapter = db.Column(db.Integer, nullable=False)
    start_verse = db.Column(db.Integer, nullable=False)
    end_chapter = db.Column(db.Integer, nullable=False)
    end_verse = db.Column(db.Integer, nullable=False)
    ordinal_start = db.Column(db.Integer, nullable=False)
    ordinal_end = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    playback_settings = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    last_updated_on = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index('ix_bookmarks_ordinal', 'ordinal_start', 'ordinal_end'),
        db.Index('ix_bookmarks_book', 'book'),
        {'sqlite_autoincrement': True},
    )

    def __init__(self, verse_range=None, notes=None, playback_settings=None, **kwargs):
        super().__init__(notes=notes, playback_settings=playback_settings, **kwargs)
        if verse_range is not None:
            self.verse_range = verse_range

    @property
    def verse_range(self):
        return VerseRange(
            Verse(self.book, self.chapter, self.start_verse),
            Verse(self.book, self.end_chapter, self.end_verse),
        )

    @verse_range.setter
    def verse_range(self, verse_range):
        if verse_range.start.book != verse_range.end.book:
            raise ValueError('A bookmark cannot span more than one book')
        self.book = verse_range.start.book
        self.chapter = verse_range.start.chapter
        self.start_verse = verse_range.start.verse
        self.end_chapter = verse_range.end.chapter
        self.end_verse = verse_range.end.verse
        self.ordinal_start = verse_range.ordinal_start
        self.ordinal_end = verse_range.ordinal_end

    @property
    def is_new(self):
        return not self.id

    def __repr__(self):
        return f'<Bookmark {self.id} {self.book} {self.chapter}:{self.start_verse}>'
