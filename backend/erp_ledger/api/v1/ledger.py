"""
Ledger API Routes - Statements, Credit Lines, Summary, Reconciliation
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from erp_ledger.core.database import get_db
from erp_ledger.schemas import (
    LedgerRefKindEnum, StatementResponse, CreditLineStatusResponse,
    AccountsSummaryResponse, ReconciliationResponse, ReconciliationDetail
)
from erp_ledger.services.account_service import AccountService
from erp_ledger.services.reconciliation_service import ReconciliationService
from erp_ledger.services.statement_service import StatementService

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.get("/statements/{kind}/{ref_id}", response_model=StatementResponse)
async def get_statement(
    kind: LedgerRefKindEnum,
    ref_id: int,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db)
):
    """Running-balance history of an account, party or nominal head, newest first"""
    return StatementService(db).get_statement(kind.value, ref_id, page, limit)


@router.get("/accounts/{account_id}/credit-status", response_model=CreditLineStatusResponse)
async def get_credit_line_status(account_id: int, db: Session = Depends(get_db)):
    return AccountService(db).get_credit_line_status(account_id)


@router.get("/summary", response_model=AccountsSummaryResponse)
async def get_accounts_summary(db: Session = Depends(get_db)):
    return AccountService(db).get_accounts_summary()


@router.post("/recalculate-outstanding", response_model=ReconciliationResponse)
async def recalculate_all_outstanding(db: Session = Depends(get_db)):
    """Recompute every customer and supplier outstanding"""
    return ReconciliationService(db).recalculate_all()


@router.post("/recalculate-outstanding/{party_id}", response_model=ReconciliationDetail)
async def recalculate_party_outstanding(party_id: int, db: Session = Depends(get_db)):
    return ReconciliationService(db).recalculate_outstanding(party_id)
