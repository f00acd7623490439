"""Persistence layer for loans, payments and profiles.

This module abstracts persistence so the web app can keep each owner's loans
in an external database. It defaults to SQLite for local development, but
accepts any SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL).

Recording a payment is the one balance mutation in the system: the loan row
is locked, the payment is split against the balance read under that lock and
both the payment and the new balance are written in the same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    delete,
    event,
    select,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from loan_tracker.data_models import FinancialProfile, LoanRecord, PaymentRecord, PaymentSplit
from loan_tracker.ledger import apply_payment

log = logging.getLogger(__name__)

Base = declarative_base()

MONEY = Numeric(14, 2)


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    owner_token = Column(String(64), index=True, nullable=False)
    description = Column(String(255))
    lender = Column(String(255))
    original_amount = Column(MONEY, nullable=False)
    current_balance = Column(MONEY, nullable=False)
    annual_interest_rate = Column(Numeric(7, 6), nullable=False)
    monthly_payment = Column(MONEY, nullable=False)
    term_months = Column(Integer)
    start_date = Column(Date)
    is_active = Column(Boolean, default=True, nullable=False)
    paid_off_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(64), primary_key=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    owner_token = Column(String(64), index=True, nullable=False)
    amount = Column(MONEY, nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_type = Column(String(16), nullable=False)
    source = Column(String(16), nullable=False)
    interest_portion = Column(MONEY, nullable=False)
    principal_portion = Column(MONEY, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ProfileModel(Base):
    __tablename__ = "financial_profiles"

    owner_token = Column(String(64), primary_key=True)
    monthly_income = Column(MONEY)
    emergency_fund = Column(MONEY)
    expected_gratuity = Column(MONEY)
    next_gratuity_date = Column(Date)


class BenchmarkOptInModel(Base):
    __tablename__ = "benchmark_opt_in"

    owner_token = Column(String(64), primary_key=True)
    opted_in = Column(Boolean, default=False, nullable=False)
    opted_in_at = Column(DateTime)


def _begin_immediate_on_sqlite(engine) -> None:
    """Open every SQLite transaction with ``BEGIN IMMEDIATE``.

    SQLite has no ``SELECT ... FOR UPDATE``; taking the write lock when the
    transaction starts keeps a second payment from reading the balance until
    the first one has committed.
    """

    @event.listens_for(engine, "connect")
    def _manual_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class LoanStore:
    """Database-backed loan store."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        if self._engine.dialect.name == "sqlite":
            _begin_immediate_on_sqlite(self._engine)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def add_loan(self, owner_token: str, loan: LoanRecord) -> LoanRecord:
        row = LoanModel(
            id=uuid4().hex,
            owner_token=owner_token,
            description=loan.description,
            lender=loan.lender,
            original_amount=loan.original_amount,
            current_balance=loan.current_balance,
            annual_interest_rate=loan.annual_interest_rate,
            monthly_payment=loan.monthly_payment,
            term_months=loan.term_months,
            start_date=loan.start_date,
            is_active=loan.is_active and loan.current_balance > 0,
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
        return self._to_loan(row)

    def list_loans(self, owner_token: str) -> List[LoanRecord]:
        if not owner_token:
            return []
        with self._session_factory() as session:
            rows = session.execute(
                select(LoanModel)
                .where(LoanModel.owner_token == owner_token)
                .order_by(LoanModel.created_at.asc())
            ).scalars()
            return [self._to_loan(row) for row in rows]

    def get_loan(self, owner_token: str, loan_id: str) -> LoanRecord:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None or row.owner_token != owner_token:
                raise LookupError(f"Loan not found: {loan_id}")
            return self._to_loan(row)

    def update_loan(self, owner_token: str, loan_id: str, changes: Dict[str, Any]) -> LoanRecord:
        """Overwrite the given columns of one of the owner's loans.

        ``changes`` is expected to be validated already. Reactivating a loan
        clears its payoff date.
        """
        with self._session_factory() as session, session.begin():
            row = session.execute(
                select(LoanModel).where(LoanModel.id == loan_id).with_for_update()
            ).scalar_one_or_none()
            if row is None or row.owner_token != owner_token:
                raise LookupError(f"Loan not found: {loan_id}")
            for column, value in changes.items():
                setattr(row, column, value)
            if changes.get("is_active"):
                row.paid_off_date = None
            row.updated_at = datetime.utcnow()
            loan = self._to_loan(row)
        return loan

    def delete_loan(self, owner_token: str, loan_id: str) -> None:
        """Remove a loan together with its payments."""
        with self._session_factory() as session, session.begin():
            row = session.get(LoanModel, loan_id)
            if row is None or row.owner_token != owner_token:
                raise LookupError(f"Loan not found: {loan_id}")
            session.execute(delete(PaymentModel).where(PaymentModel.loan_id == loan_id))
            session.delete(row)
        log.info("Loan %s deleted", loan_id)

    def record_payment(self, owner_token: str, payment: PaymentRecord) -> PaymentSplit:
        """Split ``payment`` against the loan's current balance and persist both.

        The loan row is read with ``SELECT ... FOR UPDATE`` so concurrent
        payments on the same loan are applied one after the other.
        """
        with self._session_factory() as session, session.begin():
            row = session.execute(
                select(LoanModel).where(LoanModel.id == payment.loan_id).with_for_update()
            ).scalar_one_or_none()
            if row is None or row.owner_token != owner_token:
                raise LookupError(f"Loan not found: {payment.loan_id}")

            split = apply_payment(self._to_loan(row).state(), payment.amount, payment.payment_date)
            session.add(
                PaymentModel(
                    id=uuid4().hex,
                    loan_id=row.id,
                    owner_token=owner_token,
                    amount=payment.amount,
                    payment_date=payment.payment_date,
                    payment_type=payment.payment_type,
                    source=payment.source,
                    interest_portion=split.interest_portion,
                    principal_portion=split.principal_portion,
                    notes=payment.notes,
                )
            )
            row.current_balance = split.new_balance
            row.is_active = not split.paid_off
            row.paid_off_date = split.paid_off_date
            row.updated_at = datetime.utcnow()
        if split.paid_off:
            log.info("Loan %s paid off on %s", payment.loan_id, split.paid_off_date)
        return split

    def list_payments(self, owner_token: str, loan_id: Optional[str] = None) -> List[PaymentRecord]:
        if not owner_token:
            return []
        query = select(PaymentModel).where(PaymentModel.owner_token == owner_token)
        if loan_id:
            query = query.where(PaymentModel.loan_id == loan_id)
        with self._session_factory() as session:
            rows = session.execute(
                query.order_by(PaymentModel.payment_date.desc(), PaymentModel.created_at.desc())
            ).scalars()
            return [self._to_payment(row) for row in rows]

    def get_profile(self, owner_token: str) -> FinancialProfile:
        with self._session_factory() as session:
            row = session.get(ProfileModel, owner_token)
            if row is None:
                return FinancialProfile()
            return FinancialProfile(
                monthly_income=row.monthly_income,
                emergency_fund=row.emergency_fund,
                expected_gratuity=row.expected_gratuity,
                next_gratuity_date=row.next_gratuity_date,
            )

    def save_profile(self, owner_token: str, profile: FinancialProfile) -> None:
        with self._session_factory() as session:
            row = session.get(ProfileModel, owner_token)
            if row is None:
                row = ProfileModel(owner_token=owner_token)
                session.add(row)
            row.monthly_income = profile.monthly_income
            row.emergency_fund = profile.emergency_fund
            row.expected_gratuity = profile.expected_gratuity
            row.next_gratuity_date = profile.next_gratuity_date
            session.commit()

    def set_opt_in(self, owner_token: str, opted_in: bool) -> None:
        with self._session_factory() as session:
            row = session.get(BenchmarkOptInModel, owner_token)
            if row is None:
                row = BenchmarkOptInModel(owner_token=owner_token)
                session.add(row)
            row.opted_in = opted_in
            row.opted_in_at = datetime.utcnow() if opted_in else None
            session.commit()

    def is_opted_in(self, owner_token: str) -> bool:
        with self._session_factory() as session:
            row = session.get(BenchmarkOptInModel, owner_token)
            return bool(row and row.opted_in)

    def opted_in_owners(self) -> List[str]:
        with self._session_factory() as session:
            return list(
                session.execute(
                    select(BenchmarkOptInModel.owner_token).where(BenchmarkOptInModel.opted_in.is_(True))
                ).scalars()
            )

    def benchmark_data(self, owners: List[str]) -> Dict[str, list]:
        """Loans and payments of the given owners, with owner ids attached."""
        with self._session_factory() as session:
            loans = session.execute(select(LoanModel).where(LoanModel.owner_token.in_(owners))).scalars()
            payments = session.execute(
                select(PaymentModel).where(PaymentModel.owner_token.in_(owners))
            ).scalars()
            return {
                "loans": [self._to_loan(row) for row in loans],
                "payments": [self._to_payment(row) for row in payments],
            }

    @staticmethod
    def _to_loan(row: LoanModel) -> LoanRecord:
        return LoanRecord(
            id=row.id,
            current_balance=Decimal(row.current_balance),
            original_amount=Decimal(row.original_amount),
            annual_interest_rate=Decimal(row.annual_interest_rate),
            monthly_payment=Decimal(row.monthly_payment),
            is_active=row.is_active,
            start_date=row.start_date,
            term_months=row.term_months,
            description=row.description,
            lender=row.lender,
            owner_id=row.owner_token,
            paid_off_date=row.paid_off_date,
        )

    @staticmethod
    def _to_payment(row: PaymentModel) -> PaymentRecord:
        return PaymentRecord(
            amount=Decimal(row.amount),
            payment_date=row.payment_date,
            payment_type=row.payment_type,
            source=row.source,
            notes=row.notes,
            loan_id=row.loan_id,
            interest_portion=Decimal(row.interest_portion),
            principal_portion=Decimal(row.principal_portion),
        )


def create_store_from_env(url: Optional[str]) -> LoanStore:
    return LoanStore(url or "sqlite:///loan_tracker.sqlite3")
