from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CONFIGURATION_TYPES = (
    "TEXT",
    "NUMBER",
    "BOOLEAN",
    "SINGLE_CHOICE",
    "MULTIPLE_CHOICE",
    "RANGE",
)

CHOICE_TYPES = ("SINGLE_CHOICE", "MULTIPLE_CHOICE")

RULE_TYPES = ("MIN_VALUE", "MAX_VALUE", "REGEX", "CUSTOM")


class MachineGroup(db.Model):
    """Top level of the catalog: a family of machines."""
    __tablename__ = "machine_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    color = db.Column(db.String(16), nullable=True)
    icon = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self, include_machines: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_machines:
            data["machines"] = [
                {"id": m.id, "name": m.name, "description": m.description}
                for m in sorted(self.machines, key=lambda m: m.name)
                if m.is_active
            ]
        return data


class Machine(db.Model):
    """
    A configurable machine.

    tags is a JSON list of strings used for alternative grouping.
    """
    __tablename__ = "machines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("machine_groups.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    tags = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    group = db.relationship("MachineGroup", backref=db.backref("machines", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "group": {"id": self.group.id, "name": self.group.name} if self.group else None,
            "name": self.name,
            "description": self.description,
            "tags": list(self.tags or []),
            "is_active": self.is_active,
            "tab_count": len([t for t in self.tabs if t.is_active]),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ConfigurationTab(db.Model):
    """Ordered tab of a machine; groups configurations for display."""
    __tablename__ = "configuration_tabs"
    __table_args__ = (
        db.Index("ix_configuration_tabs_machine_order", "machine_id", "order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    machine_id = db.Column(db.Integer, db.ForeignKey("machines.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    machine = db.relationship("Machine", backref=db.backref("tabs", lazy=True, order_by="ConfigurationTab.order"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "machine_id": self.machine_id,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "is_active": self.is_active,
            "configuration_count": len(self.tab_configurations),
            "created_at": to_utc_z(self.created_at),
        }


class Configuration(db.Model):
    """
    A typed, reusable field definition attachable to machines via tabs.

    Deleting is a soft delete (is_active=False) and is refused while the
    configuration is still attached to any tab.
    """
    __tablename__ = "configurations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    help_text = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    ai_logic_hint = db.Column(db.String(1000), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def active_options(self) -> list["ConfigurationOption"]:
        return [o for o in self.options if o.is_active]

    @property
    def active_rules(self) -> list["ValidationRule"]:
        return [r for r in self.validation_rules if r.is_active]

    def to_dict(self, include_options: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "help_text": self.help_text,
            "type": self.type,
            "is_required": self.is_required,
            "ai_logic_hint": self.ai_logic_hint,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_options:
            data["options"] = [
                o.to_dict() for o in sorted(self.active_options, key=lambda o: o.display_name)
            ]
            data["validation_rules"] = [r.to_dict() for r in self.active_rules]
        return data


class ConfigurationOption(db.Model):
    """Selectable value of a choice configuration, with its price impact."""
    __tablename__ = "configuration_options"
    __table_args__ = (
        db.UniqueConstraint("configuration_id", "value", name="uq_configuration_options_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    configuration_id = db.Column(db.Integer, db.ForeignKey("configurations.id"), nullable=False, index=True)
    value = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_modifier = db.Column(db.Numeric(12, 2), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    configuration = db.relationship("Configuration", backref=db.backref("options", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "configuration_id": self.configuration_id,
            "value": self.value,
            "display_name": self.display_name,
            "description": self.description,
            "price_modifier": float(self.price_modifier) if self.price_modifier is not None else None,
            "is_default": self.is_default,
            "is_active": self.is_active,
        }


class ValidationRule(db.Model):
    """Rule evaluated by the configuration validation engine."""
    __tablename__ = "validation_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    configuration_id = db.Column(db.Integer, db.ForeignKey("configurations.id"), nullable=False, index=True)
    rule_type = db.Column(db.String(32), nullable=False)
    rule_value = db.Column(db.String(1000), nullable=True)
    error_message = db.Column(db.String(500), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    configuration = db.relationship("Configuration", backref=db.backref("validation_rules", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "configuration_id": self.configuration_id,
            "rule_type": self.rule_type,
            "rule_value": self.rule_value,
            "error_message": self.error_message,
            "is_active": self.is_active,
        }


class ConfigurationDependency(db.Model):
    """
    Parent -> child edge between configurations.

    condition and action are stored and exposed as data; nothing evaluates them.
    """
    __tablename__ = "configuration_dependencies"
    __table_args__ = (
        db.UniqueConstraint(
            "parent_configuration_id", "child_configuration_id",
            name="uq_configuration_dependencies_pair",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parent_configuration_id = db.Column(db.Integer, db.ForeignKey("configurations.id"), nullable=False, index=True)
    child_configuration_id = db.Column(db.Integer, db.ForeignKey("configurations.id"), nullable=False, index=True)
    dependency_type = db.Column(db.String(32), nullable=True)
    condition = db.Column(db.Text, nullable=True)
    action = db.Column(db.Text, nullable=True)

    parent_configuration = db.relationship(
        "Configuration",
        foreign_keys=[parent_configuration_id],
        backref=db.backref("child_dependencies", lazy=True),
    )
    child_configuration = db.relationship(
        "Configuration",
        foreign_keys=[child_configuration_id],
        backref=db.backref("parent_dependencies", lazy=True),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parent_configuration_id": self.parent_configuration_id,
            "child_configuration_id": self.child_configuration_id,
            "dependency_type": self.dependency_type,
            "condition": self.condition,
            "action": self.action,
        }


class TabConfiguration(db.Model):
    """
    Placement of a configuration on a tab.

    order and is_visible are tab-specific; is_required overrides the
    configuration's own flag for this placement when not NULL.
    """
    __tablename__ = "tab_configurations"
    __table_args__ = (
        db.UniqueConstraint("tab_id", "configuration_id", name="uq_tab_configurations"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tab_id = db.Column(db.Integer, db.ForeignKey("configuration_tabs.id"), nullable=False, index=True)
    configuration_id = db.Column(db.Integer, db.ForeignKey("configurations.id"), nullable=False, index=True)
    order = db.Column(db.Integer, nullable=False, default=1)
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    is_required = db.Column(db.Boolean, nullable=True)

    tab = db.relationship(
        "ConfigurationTab",
        backref=db.backref("tab_configurations", lazy=True, order_by="TabConfiguration.order"),
    )
    configuration = db.relationship("Configuration", backref=db.backref("tab_configurations", lazy=True))

    def to_dict(self, include_configuration: bool = False) -> dict:
        data = {
            "id": self.id,
            "tab_id": self.tab_id,
            "configuration_id": self.configuration_id,
            "order": self.order,
            "is_visible": self.is_visible,
            "is_required": self.is_required,
        }
        if include_configuration:
            data["configuration"] = self.configuration.to_dict()
        return data
