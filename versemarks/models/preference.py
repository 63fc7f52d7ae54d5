from datetime import datetime, timezone
from versemarks.extensions import db


class Preference(db.Model):
    __tablename__ = 'preferences'

    key = db.Column(db.String(100), primary_key=True)
    int_value = db.Column(db.BigInteger, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
