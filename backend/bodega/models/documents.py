from __future__ import annotations

from ..extensions import db


class Document(db.Model):
    """
    One document of the remote transactional store.

    Documents are schemaless JSON payloads addressed by (collection, doc_id).
    version_id is the optimistic-concurrency token: every committed write bumps
    it, and a transactional write only applies if the version it read is still
    current.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.Index("ix_documents_collection", "collection"),
    )

    collection = db.Column(db.String(64), primary_key=True)
    doc_id = db.Column(db.String(64), primary_key=True)

    data = db.Column(db.JSON, nullable=False, default=dict)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id} v{self.version_id}>"

    def as_record(self) -> dict:
        """Payload with its id, as handed to readers."""
        record = dict(self.data or {})
        record["id"] = self.doc_id
        return record
