from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


QUOTATION_STATUSES = ("DRAFT", "SENT", "ACCEPTED", "REJECTED", "EXPIRED")


class Quotation(db.Model):
    """
    Quotation for one customer, optionally bound to a machine.

    VERSION CHAIN: create_version marks the parent is_latest_version=False and
    creates a successor with version = parent.version + 1 and
    parent_quotation_id = parent.id. Listings show latest versions only.

    total_price is a snapshot written by calculate_price; it is not kept in
    sync with configuration writes.
    """
    __tablename__ = "quotations"
    __table_args__ = (
        db.Index("ix_quotations_user_latest", "user_id", "is_latest_version"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    title = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    machine_id = db.Column(db.Integer, db.ForeignKey("machines.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    parent_quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=True, index=True)
    is_latest_version = db.Column(db.Boolean, nullable=False, default=True)
    version_notes = db.Column(db.Text, nullable=True)

    total_price = db.Column(db.Numeric(14, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("quotations", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("quotations", lazy=True))
    machine = db.relationship("Machine", backref=db.backref("quotations", lazy=True))
    parent_quotation = db.relationship("Quotation", remote_side=[id], backref=db.backref("child_versions", lazy=True))

    def to_dict(self, include_configurations: bool = False) -> dict:
        current = [qc for qc in self.configurations if qc.is_current_version]
        data = {
            "id": self.id,
            "quotation_number": self.quotation_number,
            "title": self.title,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "customer": {
                "id": self.customer.id,
                "company_name": self.customer.company_name,
                "contact_person": self.customer.contact_person,
                "email": self.customer.email,
            } if self.customer else None,
            "machine_id": self.machine_id,
            "machine": {
                "id": self.machine.id,
                "name": self.machine.name,
                "description": self.machine.description,
            } if self.machine else None,
            "status": self.status,
            "version": self.version,
            "parent_quotation_id": self.parent_quotation_id,
            "is_latest_version": self.is_latest_version,
            "version_notes": self.version_notes,
            "total_price": float(self.total_price) if self.total_price is not None else None,
            "currency": self.currency,
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
            "configuration_count": len(current),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_configurations:
            data["configurations"] = [
                qc.to_dict() for qc in sorted(current, key=lambda qc: qc.configuration_id)
            ]
        return data


class QuotationConfiguration(db.Model):
    """
    Append-only, versioned record of one configuration's value within a quotation.

    INVARIANT: for a given (quotation_id, configuration_id) exactly one row has
    is_current_version=True. Writes flag the current row and insert its
    successor in the same transaction; the partial unique index below backs
    the invariant at the database level.

    quotation_version is a per-configuration counter (1, 2, 3, ...), distinct
    from Quotation.version.
    """
    __tablename__ = "quotation_configurations"
    __table_args__ = (
        db.Index("ix_quotation_configurations_lookup", "quotation_id", "configuration_id"),
        db.Index(
            "uq_quotation_configurations_current",
            "quotation_id",
            "configuration_id",
            unique=True,
            sqlite_where=db.text("is_current_version = 1"),
            postgresql_where=db.text("is_current_version"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(
        db.Integer, db.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    configuration_id = db.Column(db.Integer, db.ForeignKey("configurations.id"), nullable=False, index=True)
    selected_option_id = db.Column(db.Integer, db.ForeignKey("configuration_options.id"), nullable=True)
    custom_value = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    quotation_version = db.Column(db.Integer, nullable=False, default=1)
    is_current_version = db.Column(db.Boolean, nullable=False, default=True)
    previous_value_hash = db.Column(db.String(64), nullable=True)
    change_description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    quotation = db.relationship(
        "Quotation",
        backref=db.backref("configurations", lazy=True, cascade="all, delete-orphan"),
    )
    configuration = db.relationship("Configuration")
    selected_option = db.relationship("ConfigurationOption")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quotation_id": self.quotation_id,
            "configuration_id": self.configuration_id,
            "configuration": {
                "id": self.configuration.id,
                "name": self.configuration.name,
                "type": self.configuration.type,
                "is_required": self.configuration.is_required,
            } if self.configuration else None,
            "selected_option_id": self.selected_option_id,
            "selected_option": {
                "id": self.selected_option.id,
                "value": self.selected_option.value,
                "display_name": self.selected_option.display_name,
                "price_modifier": (
                    float(self.selected_option.price_modifier)
                    if self.selected_option.price_modifier is not None else None
                ),
            } if self.selected_option else None,
            "custom_value": self.custom_value,
            "notes": self.notes,
            "quotation_version": self.quotation_version,
            "is_current_version": self.is_current_version,
            "previous_value_hash": self.previous_value_hash,
            "change_description": self.change_description,
            "created_at": to_utc_z(self.created_at),
        }


class QuotationNumberSequence(db.Model):
    """
    Atomic per-year quotation number sequence.

    Numbers are QUO-<year>-<nnn>, sequential within a calendar year.
    """
    __tablename__ = "quotation_number_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
