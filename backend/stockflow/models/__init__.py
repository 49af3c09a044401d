from .tenancy import Organization, Store
from .ledger import LedgerSnapshot

__all__ = [
    'Organization', 'Store',
    'LedgerSnapshot',
]
