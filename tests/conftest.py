"""
Pytest configuration and shared fixtures.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recovery_match.models import (
    Base, FundingOpportunity, HouseholdGroup, HouseholdMember, Property, User,
)
from recovery_match.notify import Notifier


class RecordingNotifier(Notifier):
    """Notifier fake: records every call, optionally blows up."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name, args))
        if self.fail:
            raise RuntimeError("email provider down")
        return True

    def send_grant_application_confirmation(self, to, grant_name, client_name, organization_id=None):
        return self._record("application", to, grant_name, client_name, organization_id)

    def send_grant_award_notification(self, to, grant_name, client_name, amount, organization_id=None):
        return self._record("award", to, grant_name, client_name, amount, organization_id)

    def send_grant_funding_notification(self, to, grant_name, client_name, amount, organization_id=None):
        return self._record("funding", to, grant_name, client_name, amount, organization_id)


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session in a test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_survivor(db_session):
    """Create a survivor with one property and a household.

    members: iterable of (annual_income, qualifying_tags).
    """
    def _make(
        name="Jane Doe",
        email="jane@example.com",
        address="12 Canal St, New Orleans, LA 70112",
        zip_code=None,
        members=((25000, ["disaster:ida-2021"]),),
    ) -> User:
        user = User(name=name, email=email, user_type="survivor")
        db_session.add(user)
        db_session.flush()

        prop = Property(survivor_id=user.id, address=address, zip_code=zip_code, primary_residence=True)
        db_session.add(prop)
        db_session.flush()

        group = HouseholdGroup(name=f"{name} household", property_id=prop.id)
        db_session.add(group)
        db_session.flush()

        for i, (income, tags) in enumerate(members):
            db_session.add(HouseholdMember(
                group_id=group.id,
                name=f"{name} member {i + 1}",
                annual_income=income,
                qualifying_tags=list(tags),
            ))
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_opportunity(db_session):
    def _make(name="Rebuild Fund", criteria=None, status="active", organization_id=1) -> FundingOpportunity:
        opp = FundingOpportunity(
            name=name,
            description=f"{name} description",
            organization_id=organization_id,
            status=status,
            award_amount=5000,
            eligibility_criteria=criteria if criteria is not None else [
                {"type": "income", "ranges": [{"min": 0, "max": 30000}]},
            ],
        )
        db_session.add(opp)
        db_session.commit()
        return opp

    return _make


@pytest.fixture
def practitioner(db_session) -> User:
    user = User(name="Case Manager", email="cm@example.org", user_type="practitioner", organization_id=1)
    db_session.add(user)
    db_session.commit()
    return user
