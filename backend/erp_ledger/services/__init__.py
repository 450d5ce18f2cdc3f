# Services Package
from erp_ledger.services.account_service import AccountService, PartyService
from erp_ledger.services.allocation_engine import allocate, AllocationResult, AllocationLine, OutstandingDocument
from erp_ledger.services.audit_service import AuditService, AuditAction
from erp_ledger.services.document_service import DocumentService
from erp_ledger.services.ledger_poster import LedgerPoster, LedgerLine, LedgerRef, PostingContext
from erp_ledger.services.reconciliation_service import ReconciliationService
from erp_ledger.services.settlement_service import SettlementService
from erp_ledger.services.statement_service import StatementService, build_statement

__all__ = [
    'AccountService',
    'PartyService',
    'allocate',
    'AllocationResult',
    'AllocationLine',
    'OutstandingDocument',
    'AuditService',
    'AuditAction',
    'DocumentService',
    'LedgerPoster',
    'LedgerLine',
    'LedgerRef',
    'PostingContext',
    'ReconciliationService',
    'SettlementService',
    'StatementService',
    'build_statement',
]
