from versemarks.extensions import db


class Label(db.Model):
    """A persisted, flat, user-named label.

    Two persisted labels are equal iff their ids are equal. A label that has
    not been inserted yet only equals itself.
    """

    __tablename__ = 'labels'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(200), nullable=False)
    color = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.Index('ix_labels_name', 'name'),
        {'sqlite_autoincrement': True},
    )

    @property
    def is_new(self):
        return not self.id

    def __eq__(self, other):
        if not isinstance(other, Label):
            return NotImplemented
        if self.is_new or other.is_new:
            return self is other
        return self.id == other.id

    def __hash__(self):
        # Unsaved labels hash by identity; saved labels by id.
        if self.is_new:
            return id(self)
        return hash(('label', self.id))

    def __repr__(self):
        return f'<Label {self.id} {self.name!r}>'


class BookmarkToLabel(db.Model):
    __tablename__ = 'bookmark_labels'

    bookmark_id = db.Column(
        db.Integer, db.ForeignKey('bookmarks.id', ondelete='CASCADE'), primary_key=True
    )
    label_id = db.Column(
        db.Integer, db.ForeignKey('labels.id', ondelete='CASCADE'), primary_key=True
    )

    __table_args__ = (
        db.Index('ix_bookmark_labels_label', 'label_id'),
    )
