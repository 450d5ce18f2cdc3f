# API v1 Package
from erp_ledger.api.v1 import settlement, ledger

__all__ = [
    'settlement',
    'ledger',
]
