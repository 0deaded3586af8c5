"""
Shared fixtures: an in-memory SQLite store per test, a fixed clock, and
factories for users, profiles and accounts.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bureau.database import Base, init_db
from bureau.models import (
    AccountType, Actor, CreditAccountDB, PaymentHistoryDB, PaymentStatus, UserDB, UserRole,
    derive_account_status,
)
from bureau.services.profiles import ProfileService
from bureau.services.scoring import ScoreCoordinator


FIXED_NOW = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def coordinator(db, clock):
    return ScoreCoordinator(db, clock=clock)


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(db):
    def _make_user(role=UserRole.CONSUMER, first_name="Test", last_name="User", **kwargs):
        user = UserDB(
            id=str(uuid4()),
            email=f"{uuid4().hex[:10]}@example.com",
            first_name=first_name,
            last_name=last_name,
            role=role,
            **kwargs,
        )
        db.add(user)
        db.commit()
        return user
    return _make_user


@pytest.fixture
def actor_for():
    def _actor_for(user):
        return Actor(id=user.id, role=UserRole(user.role), display_name=user.full_name)
    return _actor_for


@pytest.fixture
def consumer_user(make_user):
    return make_user(
        UserRole.CONSUMER, "Alice", "Consumer",
        address="12 Main St, Springfield",
        date_of_birth=datetime(1985, 4, 2),
    )


@pytest.fixture
def lender_user(make_user):
    return make_user(UserRole.LENDER, "First", "Bank")


@pytest.fixture
def admin_user(make_user):
    return make_user(UserRole.ADMIN, "Bureau", "Admin")


@pytest.fixture
def consumer(consumer_user, actor_for):
    return actor_for(consumer_user)


@pytest.fixture
def lender(lender_user, actor_for):
    return actor_for(lender_user)


@pytest.fixture
def admin(admin_user, actor_for):
    return actor_for(admin_user)


@pytest.fixture
def profile(db, clock, consumer_user):
    return ProfileService(db, clock=clock).create_profile(consumer_user.id, "123-45-6789")


@pytest.fixture
def seed_account(db, now):
    """Insert an account row directly, bypassing the service (no recalculation)."""
    def _seed_account(profile_id, lender_id, account_type=AccountType.CREDIT_CARD,
                      credit_limit=1000.0, current_balance=0.0, open_date=None,
                      payments=(), close_date=None, original_amount=None):
        account = CreditAccountDB(
            id=str(uuid4()),
            profile_id=profile_id,
            account_type=account_type,
            lender_id=lender_id,
            lender_name="First Bank",
            account_number="4111111111111111",
            open_date=open_date or now - timedelta(days=400),
            close_date=close_date,
            credit_limit=credit_limit if account_type == AccountType.CREDIT_CARD else None,
            current_balance=current_balance,
            original_amount=original_amount,
            last_report_date=now,
        )
        for position, status in enumerate(payments):
            account.payment_history.append(PaymentHistoryDB(
                position=position,
                due_date=now - timedelta(days=30 * (len(payments) - position)),
                amount_due=50.0,
                amount_paid=50.0 if status == PaymentStatus.ON_TIME else 0.0,
                status=status,
                reported_at=now,
            ))
        latest = PaymentStatus(payments[-1]) if payments else None
        account.status = derive_account_status(latest, close_date, now)
        db.add(account)
        db.commit()
        return account
    return _seed_account
