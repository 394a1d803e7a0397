from dataclasses import dataclass, field
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from recovery_match.models import HouseholdGroup, HouseholdMember, Property
from recovery_match.utils.text import clean_text, extract_zip

logger = logging.getLogger("matching")

DISASTER_TAG_PREFIX = "disaster:"


@dataclass
class SurvivorProfile:
    """Snapshot of the survivor attributes the criteria are evaluated against."""

    survivor_id: int
    zip_code: str | None = None
    household_income: float = 0.0
    household_size: int = 0
    qualifying_tags: list[str] = field(default_factory=list)

    @property
    def disaster_events(self) -> list[str]:
        return [t[len(DISASTER_TAG_PREFIX):] for t in self.qualifying_tags if t.startswith(DISASTER_TAG_PREFIX)]


def _resolve_zip(session: Session, prop: Property | None) -> str | None:
    if prop is None:
        return None
    if prop.zip_code:
        return prop.zip_code
    zip_code = extract_zip(prop.address)
    if zip_code:
        # cache the extracted zip on the property for future scans
        prop.zip_code = zip_code
        session.add(prop)
        session.flush()
        logger.debug(f"Extracted zip {zip_code} from address of property {prop.id}")
    return zip_code


def build_profile(session: Session, survivor_id: int) -> SurvivorProfile:
    properties = session.scalars(
        select(Property)
        .where(Property.survivor_id == survivor_id)
        .order_by(Property.primary_residence.desc(), Property.id)
    ).all()

    zip_code = _resolve_zip(session, properties[0] if properties else None)

    members: list[HouseholdMember] = []
    if properties:
        members = session.scalars(
            select(HouseholdMember)
            .join(HouseholdGroup, HouseholdMember.group_id == HouseholdGroup.id)
            .where(HouseholdGroup.property_id.in_([p.id for p in properties]))
            .order_by(HouseholdMember.id)
        ).all()

    tags: list[str] = []
    for m in members:
        for t in m.qualifying_tags or []:
            t = clean_text(t)
            if t:
                tags.append(t)

    return SurvivorProfile(
        survivor_id=survivor_id,
        zip_code=zip_code,
        household_income=float(sum((m.annual_income or 0) for m in members)),
        household_size=len(members),
        qualifying_tags=tags,
    )
