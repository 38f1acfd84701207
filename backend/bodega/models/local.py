from __future__ import annotations

from ..extensions import db


class LocalEntry(db.Model):
    """
    Key -> serialized value row of the device-local durable store.

    Lives on the "local" bind so demo sessions never touch the remote database.
    One row holds a whole logical table (a JSON array of records).
    """
    __bind_key__ = "local"
    __tablename__ = "local_entries"

    key = db.Column(db.String(128), primary_key=True)
    value = db.Column(db.Text, nullable=False)

    def __repr__(self) -> str:
        return f"<LocalEntry key={self.key!r} bytes={len(self.value or '')}>"
