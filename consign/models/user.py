from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

from consign.extensions import db


ROLES = ("buyer", "seller", "shipper", "admin")

# Seller fee tiers; fee rates live in utils/commission.py
FEE_TIERS = ("NEW_SELLER", "RISING_SELLER", "PRO_SELLER", "ELITE_SELLER")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    role = db.Column(db.String(32), nullable=False, default="buyer")
    fee_tier = db.Column(db.String(32), nullable=False, default="NEW_SELLER", server_default="NEW_SELLER")

    # Gateway transfer recipient for escrow payouts
    payout_recipient_code = db.Column(db.String(64), nullable=True)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def normalized_role(self) -> str:
        return (self.role or "buyer").strip().lower()

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "role": self.normalized_role,
            "fee_tier": self.fee_tier or "NEW_SELLER",
        }
