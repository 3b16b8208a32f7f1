from __future__ import annotations

from datetime import datetime

from consign.extensions import db


class ListingStatus:
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SOLD = "SOLD"
    DELETED = "DELETED"
    REPORTED = "REPORTED"
    BANNED = "BANNED"
    DRAFT = "DRAFT"

    MESSAGES = {
        SOLD: "This item has been sold",
        INACTIVE: "This item is currently unavailable",
        DELETED: "This item has been removed",
        REPORTED: "This item is under review",
        BANNED: "This item is no longer available",
        DRAFT: "This item is still in draft mode",
    }


class Listing(db.Model):
    """Local read model of the catalog, consulted at checkout only."""

    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    image_url = db.Column(db.String(1024), nullable=True)
    condition = db.Column(db.String(32), nullable=True)
    category = db.Column(db.String(64), nullable=True)

    price_minor = db.Column(db.BigInteger, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=ListingStatus.ACTIVE, index=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    def unavailable_reason(self) -> str | None:
        status = (self.status or "").strip().upper()
        if status == ListingStatus.ACTIVE:
            return None
        return ListingStatus.MESSAGES.get(status, "This item is currently unavailable")
