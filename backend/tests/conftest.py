"""
Pytest fixtures for configurator backend tests.

Provides test database setup, user/role factories, a small demo catalog,
customers, and auth headers for the test client.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from configurator import create_app
from configurator.extensions import db
from configurator.models import (
    Configuration,
    ConfigurationOption,
    ConfigurationTab,
    Customer,
    Machine,
    MachineGroup,
    TabConfiguration,
    User,
    UserCustomer,
    ValidationRule,
)
from configurator.services import quotation_service, role_service
from configurator.services.auth_service import generate_access_token, hash_password


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': 'test-access-secret',
        'JWT_REFRESH_SECRET': 'test-refresh-secret',
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """One bcrypt hash shared by every seeded user."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    """Factory: make_user("a@b.c", roles=["SALES"]) -> User with SYSTEM-assigned roles."""
    def _make(email, roles=("USER",), is_active=True, first_name=None, last_name=None):
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            display_name=email,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        if roles:
            role_service.sync_user_role_names(user.id, list(roles))
        return user
    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin@configurator.test", roles=["ADMIN"])


@pytest.fixture(scope='function')
def sales(make_user):
    return make_user("sales@configurator.test", roles=["SALES"], first_name="Sam", last_name="Seller")


@pytest.fixture(scope='function')
def other_sales(make_user):
    return make_user("other.sales@configurator.test", roles=["SALES"])


@pytest.fixture(scope='function')
def manager(make_user):
    return make_user("manager@configurator.test", roles=["SALES_MANAGER"])


@pytest.fixture(scope='function')
def plain_user(make_user):
    return make_user("user@configurator.test", roles=["USER"])


def auth_headers(user) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {generate_access_token(user)}'}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def sales_headers(sales):
    return auth_headers(sales)


@pytest.fixture(scope='function')
def other_sales_headers(other_sales):
    return auth_headers(other_sales)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return auth_headers(manager)


@pytest.fixture(scope='function')
def user_headers(plain_user):
    return auth_headers(plain_user)


def _configuration(name, config_type, is_required=False, is_active=True):
    return Configuration(
        name=name,
        description=f"{name} description",
        help_text=f"{name} help",
        type=config_type,
        is_required=is_required,
        is_active=is_active,
    )


@pytest.fixture(scope='function')
def catalog(db_session):
    """
    One machine with two active tabs and one inactive tab.

    Reachable configurations: motor (SINGLE_CHOICE, required), label (TEXT,
    required, regex), throughput (NUMBER, 1..20), extras (MULTIPLE_CHOICE),
    hidden (invisible placement). Not reachable: retired (inactive) and
    archived (only on the inactive tab). spare is on no machine at all.
    """
    group = MachineGroup(name="Sorters", description="Optical sorters", is_active=True)
    machine = Machine(group=group, name="Sorter-600", description="600 mm sorter", tags=["sorter", "600mm"], is_active=True)
    general = ConfigurationTab(machine=machine, name="General", description="General", order=1, is_active=True)
    performance = ConfigurationTab(machine=machine, name="Performance", description="Performance", order=2, is_active=True)
    legacy = ConfigurationTab(machine=machine, name="Legacy", description="Legacy", order=3, is_active=False)

    motor = _configuration("Motor Power", "SINGLE_CHOICE", is_required=True)
    label = _configuration("Machine Label", "TEXT", is_required=True)
    throughput = _configuration("Throughput", "NUMBER")
    extras = _configuration("Extras", "MULTIPLE_CHOICE")
    hidden = _configuration("Service Notes", "TEXT")
    retired = _configuration("Retired Option", "BOOLEAN", is_active=False)
    archived = _configuration("Archived", "TEXT")
    spare = _configuration("Spare", "TEXT")

    motor_small = ConfigurationOption(configuration=motor, value="5_5KW", display_name="5.5 kW",
                                      price_modifier=Decimal("1000.00"), is_default=True, is_active=True)
    motor_large = ConfigurationOption(configuration=motor, value="11KW", display_name="11 kW",
                                      price_modifier=Decimal("2500.00"), is_active=True)
    motor_unpriced = ConfigurationOption(configuration=motor, value="CUSTOM", display_name="Custom motor",
                                         price_modifier=None, is_active=True)
    motor_retired = ConfigurationOption(configuration=motor, value="OLD", display_name="Old motor",
                                        price_modifier=Decimal("10.00"), is_active=False)
    extras_camera = ConfigurationOption(configuration=extras, value="camera", display_name="Camera",
                                        price_modifier=Decimal("300.00"), is_active=True)
    extras_light = ConfigurationOption(configuration=extras, value="light", display_name="Light",
                                       price_modifier=Decimal("0.00"), is_active=True)

    rules = [
        ValidationRule(configuration=label, rule_type="REGEX", rule_value=r"^[A-Z][A-Za-z0-9 -]{2,}$",
                       error_message="Label must start with a capital letter", is_active=True),
        ValidationRule(configuration=throughput, rule_type="MIN_VALUE", rule_value="1",
                       error_message="Throughput must be at least 1", is_active=True),
        ValidationRule(configuration=throughput, rule_type="MAX_VALUE", rule_value="20",
                       error_message="Throughput cannot exceed 20", is_active=True),
    ]

    placements = [
        TabConfiguration(tab=general, configuration=label, order=1, is_visible=True),
        TabConfiguration(tab=general, configuration=hidden, order=2, is_visible=False),
        TabConfiguration(tab=general, configuration=retired, order=3, is_visible=True),
        TabConfiguration(tab=performance, configuration=motor, order=1, is_visible=True),
        TabConfiguration(tab=performance, configuration=throughput, order=2, is_visible=True),
        TabConfiguration(tab=performance, configuration=extras, order=3, is_visible=True),
        TabConfiguration(tab=legacy, configuration=archived, order=1, is_visible=True),
    ]

    db_session.add_all([group, machine, general, performance, legacy, spare, motor_retired])
    db_session.add_all([motor_small, motor_large, motor_unpriced, extras_camera, extras_light])
    db_session.add_all(rules + placements)
    db_session.commit()

    return SimpleNamespace(
        group=group,
        machine=machine,
        tabs=SimpleNamespace(general=general, performance=performance, legacy=legacy),
        motor=motor,
        label=label,
        throughput=throughput,
        extras=extras,
        hidden=hidden,
        retired=retired,
        archived=archived,
        spare=spare,
        options=SimpleNamespace(
            motor_small=motor_small,
            motor_large=motor_large,
            motor_unpriced=motor_unpriced,
            motor_retired=motor_retired,
            extras_camera=extras_camera,
            extras_light=extras_light,
        ),
        reachable_ids=sorted([motor.id, label.id, throughput.id, extras.id, hidden.id]),
    )


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: make_customer(owner, "Acme GmbH") -> Customer linked to owner."""
    def _make(owner, company_name="Acme GmbH", **fields):
        fields.setdefault("is_active", True)
        customer = Customer(company_name=company_name, **fields)
        customer.user_customers.append(UserCustomer(user_id=owner.id))
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def customer(make_customer, sales):
    return make_customer(sales, "Acme GmbH", contact_person="Ada Acme", country="DE")


@pytest.fixture(scope='function')
def make_quotation(db_session):
    """Factory: make_quotation(owner, customer, machine=None, title=...) via the service layer."""
    def _make(owner, customer, machine=None, title="Line upgrade", **extra):
        patch = {"title": title, "customer_id": customer.id, **extra}
        if machine is not None:
            patch["machine_id"] = machine.id
        return quotation_service.create_quotation(user_id=owner.id, patch=patch)
    return _make
