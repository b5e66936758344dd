# Overview: Demo catalog seeding for development databases; idempotent by name.

"""
Demo Data

seed_demo_catalog() creates one machine group with one fully configured
machine (tabs, configurations, options, rules and a dependency edge).
Running it again changes nothing when the machine already exists.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    Configuration,
    ConfigurationDependency,
    ConfigurationOption,
    ConfigurationTab,
    Machine,
    MachineGroup,
    TabConfiguration,
    ValidationRule,
)

DEMO_GROUP = {
    "name": "Trias",
    "description": "Optical sorters for grain, seeds and pulses",
    "color": "#1f6feb",
    "icon": "sort",
}

DEMO_MACHINE = {
    "name": "Trias-600",
    "description": "Trias-600 optical sorter, 600 mm chute width",
    "tags": ["optical-sorter", "600mm", "demo"],
}

DEMO_TABS = [
    ("General Configuration", "Basic machine parameters"),
    ("Performance Settings", "Throughput and drive options"),
]

DEMO_CONFIGURATIONS = [
    {
        "tab": 0,
        "name": "Trias-600 Machine Name",
        "description": "Custom name for the machine installation",
        "help_text": "3-50 characters: letters, digits, spaces, hyphens",
        "type": "TEXT",
        "is_required": True,
        "rules": [("REGEX", r"^[A-Za-z0-9 \-]{3,50}$", "Machine name must be 3-50 letters, digits, spaces or hyphens")],
        "options": [],
    },
    {
        "tab": 1,
        "name": "Trias-600 Motor Power",
        "description": "Drive motor power",
        "help_text": "Higher power allows higher throughput",
        "type": "SINGLE_CHOICE",
        "is_required": True,
        "rules": [],
        "options": [
            ("5_5KW", "5.5 kW", "0", True),
            ("7_5KW", "7.5 kW", "1200", False),
            ("11KW", "11 kW", "2500", False),
        ],
    },
    {
        "tab": 1,
        "name": "Trias-600 Throughput",
        "description": "Target throughput in t/h",
        "help_text": "Between 1 and 20 t/h",
        "type": "NUMBER",
        "is_required": False,
        "rules": [
            ("MIN_VALUE", "1", "Throughput must be at least 1 t/h"),
            ("MAX_VALUE", "20", "Throughput cannot exceed 20 t/h"),
        ],
        "options": [],
    },
]


def seed_demo_catalog() -> Machine:
    machine = db.session.query(Machine).filter_by(name=DEMO_MACHINE["name"]).first()
    if machine:
        return machine

    group = db.session.query(MachineGroup).filter_by(name=DEMO_GROUP["name"]).first()
    if not group:
        group = MachineGroup(is_active=True, **DEMO_GROUP)
        db.session.add(group)

    machine = Machine(group=group, is_active=True, **DEMO_MACHINE)
    db.session.add(machine)

    tabs = []
    for order, (name, description) in enumerate(DEMO_TABS, start=1):
        tab = ConfigurationTab(machine=machine, name=name, description=description, order=order, is_active=True)
        db.session.add(tab)
        tabs.append(tab)

    configurations = []
    for order, entry in enumerate(DEMO_CONFIGURATIONS, start=1):
        configuration = Configuration(
            name=entry["name"],
            description=entry["description"],
            help_text=entry["help_text"],
            type=entry["type"],
            is_required=entry["is_required"],
            is_active=True,
        )
        db.session.add(configuration)
        for rule_type, rule_value, message in entry["rules"]:
            db.session.add(ValidationRule(
                configuration=configuration,
                rule_type=rule_type,
                rule_value=rule_value,
                error_message=message,
                is_active=True,
            ))
        for value, display_name, price, is_default in entry["options"]:
            db.session.add(ConfigurationOption(
                configuration=configuration,
                value=value,
                display_name=display_name,
                price_modifier=Decimal(price),
                is_default=is_default,
                is_active=True,
            ))
        db.session.add(TabConfiguration(
            tab=tabs[entry["tab"]],
            configuration=configuration,
            order=order,
            is_visible=True,
        ))
        configurations.append(configuration)

    db.session.add(ConfigurationDependency(
        parent_configuration=configurations[1],
        child_configuration=configurations[2],
        dependency_type="LIMITS",
        condition="value == '5_5KW'",
        action="max throughput 12",
    ))

    db.session.commit()
    current_app.logger.info("Seeded demo machine %s (%s)", machine.name, machine.id)
    return machine
