from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data for quotations.

    Ownership: a customer is visible to the users linked through
    UserCustomer rows; ADMIN and SALES_MANAGER see every customer.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_name = db.Column(db.String(255), nullable=False, index=True)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)
    country = db.Column(db.String(64), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self, include_counts: bool = False) -> dict:
        data = {
            "id": self.id,
            "company_name": self.company_name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "country": self.country,
            "is_active": self.is_active,
            "user_ids": [uc.user_id for uc in self.user_customers],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_counts:
            data["quotation_count"] = len(self.quotations)
        return data


class UserCustomer(db.Model):
    """User-Customer association (who may see and quote a customer)."""
    __tablename__ = "user_customers"
    __table_args__ = (
        db.UniqueConstraint("user_id", "customer_id", name="uq_user_customers"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("user_customers", lazy=True))
    customer = db.relationship(
        "Customer",
        backref=db.backref("user_customers", lazy=True, cascade="all, delete-orphan"),
    )
