from datetime import datetime

from consign.extensions import db


class Address(db.Model):
    __tablename__ = "addresses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    recipient_name = db.Column(db.String(120), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=True)
    street_address = db.Column(db.String(255), nullable=False, default="")
    city = db.Column(db.String(64), nullable=False, default="")
    state = db.Column(db.String(64), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)
    country = db.Column(db.String(64), nullable=False, default="")
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def snapshot(self) -> dict:
        """Plain copy stored on the order at checkout."""
        return {
            "address_id": int(self.id),
            "recipient_name": self.recipient_name or "",
            "phone": self.phone or "",
            "street_address": self.street_address or "",
            "city": self.city or "",
            "state": self.state or "",
            "postal_code": self.postal_code or "",
            "country": self.country or "",
        }
