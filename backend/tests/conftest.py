"""
Centralized Test Configuration.
"""
import os

# Must be set before the application settings are imported
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp_ledger.core.database import Base, get_db
from erp_ledger.main import app
from erp_ledger.models import Account, Party, DocumentType, PartyRole
from erp_ledger.services.document_service import DocumentService
from erp_ledger.services.settlement_service import SettlementService

# Setup In-Memory Test Database
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test function and drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # No context manager: the lifespan would initialise the configured database
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def settlement(db_session):
    return SettlementService(db_session)


# ==================== FACTORIES ====================

@pytest.fixture
def make_account(db_session):
    def _make(name="Main Bank", type="Bank", balance="0", sanctioned_limit="0"):
        account = Account(
            name=name,
            type=type,
            balance=Decimal(balance),
            sanctioned_limit=Decimal(sanctioned_limit)
        )
        db_session.add(account)
        db_session.commit()
        return account
    return _make


@pytest.fixture
def make_party(db_session):
    def _make(name="Acme Traders", role=PartyRole.CUSTOMER.value, opening_balance="0"):
        party = Party(
            name=name,
            role=role,
            opening_balance=Decimal(opening_balance),
            outstanding=Decimal(opening_balance)
        )
        db_session.add(party)
        db_session.commit()
        return party
    return _make


@pytest.fixture
def make_document(db_session):
    def _make(party, grand_total, document_date=date(2024, 1, 1), confirm=True):
        doc_type = DocumentType.INVOICE.value if party.role == PartyRole.CUSTOMER.value else DocumentType.BILL.value
        service = DocumentService(db_session)
        document = service.create_document(party.id, doc_type, document_date, Decimal(grand_total))
        if confirm:
            service.confirm_document(document.id)
        db_session.commit()
        return document
    return _make


@pytest.fixture
def bank(make_account):
    return make_account(name="Main Bank", balance="100000")


@pytest.fixture
def customer(make_party):
    return make_party(name="Acme Traders", role=PartyRole.CUSTOMER.value)


@pytest.fixture
def supplier(make_party):
    return make_party(name="Steel Supplies", role=PartyRole.SUPPLIER.value)
