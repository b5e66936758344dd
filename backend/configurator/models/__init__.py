from .auth import User, Role, UserRole, RefreshToken
from .customers import Customer, UserCustomer
from .catalog import (
    CONFIGURATION_TYPES,
    CHOICE_TYPES,
    RULE_TYPES,
    MachineGroup,
    Machine,
    ConfigurationTab,
    Configuration,
    ConfigurationOption,
    ValidationRule,
    ConfigurationDependency,
    TabConfiguration,
)
from .quotations import (
    QUOTATION_STATUSES,
    Quotation,
    QuotationConfiguration,
    QuotationNumberSequence,
)

__all__ = [
    'User', 'Role', 'UserRole', 'RefreshToken',
    'Customer', 'UserCustomer',
    'CONFIGURATION_TYPES', 'CHOICE_TYPES', 'RULE_TYPES',
    'MachineGroup', 'Machine', 'ConfigurationTab', 'Configuration',
    'ConfigurationOption', 'ValidationRule', 'ConfigurationDependency', 'TabConfiguration',
    'QUOTATION_STATUSES',
    'Quotation', 'QuotationConfiguration', 'QuotationNumberSequence',
]
