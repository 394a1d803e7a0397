"""
Tests for match/profile.py - deriving the survivor profile from the record store.
"""

from recovery_match.match.profile import SurvivorProfile, build_profile
from recovery_match.models import HouseholdGroup, HouseholdMember, Property, User
from recovery_match.utils.text import extract_zip


class TestExtractZip:

    def test_plain_zip(self):
        assert extract_zip("12 Canal St, New Orleans, LA 70112") == "70112"

    def test_zip_plus_four(self):
        assert extract_zip("12 Canal St\nNew Orleans, LA 70112-1234") == "70112-1234"

    def test_no_zip(self):
        assert extract_zip("12 Canal St, New Orleans") is None
        assert extract_zip(None) is None

    def test_longer_digit_runs_are_not_zips(self):
        assert extract_zip("Parcel 1234567890, Lot 4") is None


class TestBuildProfile:

    def test_totals_household(self, db_session, make_survivor):
        survivor = make_survivor(members=[
            (20000, ["disaster:ida-2021"]),
            (5000, ["veteran:true"]),
            (None, []),
        ])

        profile = build_profile(db_session, survivor.id)

        assert profile.household_income == 25000.0
        assert profile.household_size == 3
        assert profile.qualifying_tags == ["disaster:ida-2021", "veteran:true"]
        assert profile.disaster_events == ["ida-2021"]

    def test_zip_extracted_and_cached_on_property(self, db_session, make_survivor):
        survivor = make_survivor(address="400 Poydras St, New Orleans, LA 70130", zip_code=None)

        profile = build_profile(db_session, survivor.id)
        db_session.commit()

        assert profile.zip_code == "70130"
        prop = db_session.query(Property).filter_by(survivor_id=survivor.id).one()
        assert prop.zip_code == "70130"

    def test_stored_zip_wins_over_address(self, db_session, make_survivor):
        survivor = make_survivor(address="400 Poydras St, New Orleans, LA 70130", zip_code="70112")

        assert build_profile(db_session, survivor.id).zip_code == "70112"

    def test_address_without_zip(self, db_session, make_survivor):
        survivor = make_survivor(address="Rural Route 2, Houma")

        profile = build_profile(db_session, survivor.id)

        assert profile.zip_code is None
        prop = db_session.query(Property).filter_by(survivor_id=survivor.id).one()
        assert prop.zip_code is None

    def test_survivor_without_property(self, db_session):
        user = User(name="No Home", email=None, user_type="survivor")
        db_session.add(user)
        db_session.commit()

        profile = build_profile(db_session, user.id)

        assert profile == SurvivorProfile(survivor_id=user.id)

    def test_primary_residence_supplies_zip(self, db_session, make_survivor):
        survivor = make_survivor(zip_code="70112")
        db_session.query(Property).filter_by(survivor_id=survivor.id).update({"primary_residence": False})
        db_session.add(Property(survivor_id=survivor.id, address="1 Main St, Lafayette, LA 70501",
                                primary_residence=True))
        db_session.commit()

        assert build_profile(db_session, survivor.id).zip_code == "70501"

    def test_members_across_properties_are_counted(self, db_session, make_survivor):
        survivor = make_survivor(members=[(10000, [])])
        second = Property(survivor_id=survivor.id, address="Camp 3, Grand Isle, LA 70358")
        db_session.add(second)
        db_session.flush()
        group = HouseholdGroup(name="Second home", property_id=second.id)
        db_session.add(group)
        db_session.flush()
        db_session.add(HouseholdMember(group_id=group.id, name="Relative", annual_income=2500))
        db_session.commit()

        profile = build_profile(db_session, survivor.id)

        assert profile.household_size == 2
        assert profile.household_income == 12500.0

    def test_other_survivors_are_not_mixed_in(self, db_session, make_survivor):
        first = make_survivor(name="First", members=[(1000, ["a:b"])])
        make_survivor(name="Second", email="second@example.com", members=[(99999, ["c:d"])])

        profile = build_profile(db_session, first.id)

        assert profile.household_income == 1000.0
        assert profile.qualifying_tags == ["a:b"]
