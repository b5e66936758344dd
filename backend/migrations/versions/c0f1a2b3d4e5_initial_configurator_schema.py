"""initial configurator schema

Revision ID: c0f1a2b3d4e5
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the complete configurator schema:
- users, roles, user_roles, refresh_tokens: authentication and RBAC
- customers, user_customers: customer records and per-user ownership
- machine_groups, machines, configuration_tabs, configurations,
  configuration_options, validation_rules, configuration_dependencies,
  tab_configurations: the configurable catalog
- quotations, quotation_configurations, quotation_number_sequences
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c0f1a2b3d4e5'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # Authentication
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('permissions', sa.JSON(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_roles_name', 'roles', ['name'], unique=True)
    op.create_index('ix_roles_is_active', 'roles', ['is_active'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by', sa.String(length=64), nullable=False, server_default='SYSTEM'),
        _timestamp('assigned_at'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_roles'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])
    op.create_index('ix_user_roles_role_id', 'user_roles', ['role_id'])
    op.create_index('ix_user_roles_is_active', 'user_roles', ['is_active'])

    # Refresh tokens: only the SHA-256 of the signed token is stored
    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_refresh_tokens_token_hash', 'refresh_tokens', ['token_hash'], unique=True)
    op.create_index('ix_refresh_tokens_user_id', 'refresh_tokens', ['user_id'])
    op.create_index('ix_refresh_tokens_expires_at', 'refresh_tokens', ['expires_at'])
    op.create_index('ix_refresh_tokens_is_revoked', 'refresh_tokens', ['is_revoked'])
    op.create_index('ix_refresh_tokens_user_active', 'refresh_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # Customers
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('country', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_company_name', 'customers', ['company_name'])
    op.create_index('ix_customers_country', 'customers', ['country'])
    op.create_index('ix_customers_active', 'customers', ['is_active'])

    op.create_table(
        'user_customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        _timestamp('assigned_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'customer_id', name='uq_user_customers'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_customers_user_id', 'user_customers', ['user_id'])
    op.create_index('ix_user_customers_customer_id', 'user_customers', ['customer_id'])

    # ============================================================================
    # Catalog
    # ============================================================================
    op.create_table(
        'machine_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('color', sa.String(length=16), nullable=True),
        sa.Column('icon', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_machine_groups_is_active', 'machine_groups', ['is_active'])

    op.create_table(
        'machines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['group_id'], ['machine_groups.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_machines_group_id', 'machines', ['group_id'])
    op.create_index('ix_machines_is_active', 'machines', ['is_active'])

    op.create_table(
        'configuration_tabs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('machine_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_configuration_tabs_machine_id', 'configuration_tabs', ['machine_id'])
    op.create_index('ix_configuration_tabs_is_active', 'configuration_tabs', ['is_active'])
    op.create_index('ix_configuration_tabs_machine_order', 'configuration_tabs', ['machine_id', 'order'])

    op.create_table(
        'configurations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('help_text', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('ai_logic_hint', sa.String(length=1000), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_configurations_name', 'configurations', ['name'])
    op.create_index('ix_configurations_type', 'configurations', ['type'])
    op.create_index('ix_configurations_is_active', 'configurations', ['is_active'])

    op.create_table(
        'configuration_options',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('configuration_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_modifier', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['configuration_id'], ['configurations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('configuration_id', 'value', name='uq_configuration_options_value'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_configuration_options_configuration_id', 'configuration_options', ['configuration_id'])

    op.create_table(
        'validation_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('configuration_id', sa.Integer(), nullable=False),
        sa.Column('rule_type', sa.String(length=32), nullable=False),
        sa.Column('rule_value', sa.String(length=1000), nullable=True),
        sa.Column('error_message', sa.String(length=500), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['configuration_id'], ['configurations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_validation_rules_configuration_id', 'validation_rules', ['configuration_id'])

    op.create_table(
        'configuration_dependencies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parent_configuration_id', sa.Integer(), nullable=False),
        sa.Column('child_configuration_id', sa.Integer(), nullable=False),
        sa.Column('dependency_type', sa.String(length=32), nullable=True),
        sa.Column('condition', sa.Text(), nullable=True),
        sa.Column('action', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['parent_configuration_id'], ['configurations.id'], ),
        sa.ForeignKeyConstraint(['child_configuration_id'], ['configurations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parent_configuration_id', 'child_configuration_id',
                            name='uq_configuration_dependencies_pair'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_configuration_dependencies_parent_configuration_id',
                    'configuration_dependencies', ['parent_configuration_id'])
    op.create_index('ix_configuration_dependencies_child_configuration_id',
                    'configuration_dependencies', ['child_configuration_id'])

    op.create_table(
        'tab_configurations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tab_id', sa.Integer(), nullable=False),
        sa.Column('configuration_id', sa.Integer(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_visible', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_required', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['tab_id'], ['configuration_tabs.id'], ),
        sa.ForeignKeyConstraint(['configuration_id'], ['configurations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tab_id', 'configuration_id', name='uq_tab_configurations'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tab_configurations_tab_id', 'tab_configurations', ['tab_id'])
    op.create_index('ix_tab_configurations_configuration_id', 'tab_configurations', ['configuration_id'])

    # ============================================================================
    # Quotations
    # ============================================================================
    op.create_table(
        'quotations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quotation_number', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('machine_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('parent_quotation_id', sa.Integer(), nullable=True),
        sa.Column('is_latest_version', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_notes', sa.Text(), nullable=True),
        sa.Column('total_price', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='EUR'),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ),
        sa.ForeignKeyConstraint(['parent_quotation_id'], ['quotations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_quotations_quotation_number', 'quotations', ['quotation_number'], unique=True)
    op.create_index('ix_quotations_user_id', 'quotations', ['user_id'])
    op.create_index('ix_quotations_customer_id', 'quotations', ['customer_id'])
    op.create_index('ix_quotations_machine_id', 'quotations', ['machine_id'])
    op.create_index('ix_quotations_status', 'quotations', ['status'])
    op.create_index('ix_quotations_parent_quotation_id', 'quotations', ['parent_quotation_id'])
    op.create_index('ix_quotations_user_latest', 'quotations', ['user_id', 'is_latest_version'])

    # Append-only history; exactly one current row per (quotation, configuration)
    op.create_table(
        'quotation_configurations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quotation_id', sa.Integer(), nullable=False),
        sa.Column('configuration_id', sa.Integer(), nullable=False),
        sa.Column('selected_option_id', sa.Integer(), nullable=True),
        sa.Column('custom_value', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('quotation_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_current_version', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('previous_value_hash', sa.String(length=64), nullable=True),
        sa.Column('change_description', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['quotation_id'], ['quotations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['configuration_id'], ['configurations.id'], ),
        sa.ForeignKeyConstraint(['selected_option_id'], ['configuration_options.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_quotation_configurations_quotation_id', 'quotation_configurations', ['quotation_id'])
    op.create_index('ix_quotation_configurations_configuration_id', 'quotation_configurations', ['configuration_id'])
    op.create_index('ix_quotation_configurations_lookup', 'quotation_configurations',
                    ['quotation_id', 'configuration_id'])
    op.create_index(
        'uq_quotation_configurations_current',
        'quotation_configurations',
        ['quotation_id', 'configuration_id'],
        unique=True,
        sqlite_where=sa.text('is_current_version = 1'),
        postgresql_where=sa.text('is_current_version'),
    )

    op.create_table(
        'quotation_number_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('year'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('quotation_number_sequences')
    op.drop_index('uq_quotation_configurations_current', table_name='quotation_configurations')
    op.drop_table('quotation_configurations')
    op.drop_table('quotations')
    op.drop_table('tab_configurations')
    op.drop_table('configuration_dependencies')
    op.drop_table('validation_rules')
    op.drop_table('configuration_options')
    op.drop_table('configurations')
    op.drop_table('configuration_tabs')
    op.drop_table('machines')
    op.drop_table('machine_groups')
    op.drop_table('user_customers')
    op.drop_table('customers')
    op.drop_table('refresh_tokens')
    op.drop_table('user_roles')
    op.drop_table('roles')
    op.drop_table('users')
