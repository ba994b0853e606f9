"""
Linkage model: which BudgetItem field references which resource, and how a
resource's fields map onto the derived budget fields.

Each resource kind has one ``ResourceLink`` describing the resource
collection, the back-reference field on BudgetItem documents, the fields that
feed the description and the rule choosing which rate feeds ``unitRate``.
"""

from dataclasses import dataclass
from typing import Any
from typing import Callable
from typing import Dict
from typing import Mapping
from typing import Optional
from typing import Tuple

from production_sync.models import CastMember
from production_sync.models import CrewMember
from production_sync.models import EquipmentItem
from production_sync.models import Location
from production_sync.models import ResourceKind
from production_sync.models import StoreDocument


def _present(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def crew_description(fields: Mapping[str, Any]) -> Optional[str]:
    """Compose "{name} - {role}", or whichever half is present."""
    name = _present(fields.get("name"))
    role = _present(fields.get("role"))
    if name and role:
        return f"{name} - {role}"
    return name or role


def cast_description(fields: Mapping[str, Any]) -> Optional[str]:
    """Compose "{actorName} as {characterName}", or whichever half is present."""
    actor = _present(fields.get("actorName"))
    character = _present(fields.get("characterName"))
    if actor and character:
        return f"{actor} as {character}"
    return actor or character


def name_description(fields: Mapping[str, Any]) -> Optional[str]:
    return _present(fields.get("name"))


def flat_rate_field(unit: Optional[str]) -> Optional[str]:
    return "rate"


def equipment_rate_field(unit: Optional[str]) -> Optional[str]:
    """Pick dailyRate or weeklyRate from a budget item's free-text unit."""
    if not unit:
        return None
    lowered = unit.lower()
    if "day" in lowered:
        return "dailyRate"
    if "week" in lowered:
        return "weeklyRate"
    return None


def rental_rate_field(unit: Optional[str]) -> Optional[str]:
    return "rentalCost"


@dataclass(frozen=True)
class ResourceLink:
    """How one resource kind is linked into and synced onto BudgetItems."""

    kind: ResourceKind
    collection: str
    link_field: str
    model: type
    description_fields: Tuple[str, ...]
    rate_fields: Tuple[str, ...]
    compose_description: Callable[[Mapping[str, Any]], Optional[str]]
    select_rate_field: Callable[[Optional[str]], Optional[str]]

    def touches_description(self, changed_fields: Mapping[str, Any]) -> bool:
        return any(field in changed_fields for field in self.description_fields)

    def touches_rate(self, changed_fields: Mapping[str, Any]) -> bool:
        return any(field in changed_fields for field in self.rate_fields)

    def is_relevant(self, changed_fields: Mapping[str, Any]) -> bool:
        """True when the change can affect any derived budget field."""
        return self.touches_description(changed_fields) or self.touches_rate(changed_fields)

    def parse(self, document: Mapping[str, Any]) -> StoreDocument:
        return self.model.from_document(dict(document))


LINKS: Dict[ResourceKind, ResourceLink] = {
    ResourceKind.CREW: ResourceLink(
        kind=ResourceKind.CREW,
        collection="crew",
        link_field="linkedCrewMemberId",
        model=CrewMember,
        description_fields=("name", "role"),
        rate_fields=("rate",),
        compose_description=crew_description,
        select_rate_field=flat_rate_field,
    ),
    ResourceKind.CAST: ResourceLink(
        kind=ResourceKind.CAST,
        collection="cast",
        link_field="linkedCastMemberId",
        model=CastMember,
        description_fields=("actorName", "characterName"),
        rate_fields=("rate",),
        compose_description=cast_description,
        select_rate_field=flat_rate_field,
    ),
    ResourceKind.EQUIPMENT: ResourceLink(
        kind=ResourceKind.EQUIPMENT,
        collection="equipment",
        link_field="linkedEquipmentId",
        model=EquipmentItem,
        description_fields=("name",),
        rate_fields=("dailyRate", "weeklyRate"),
        compose_description=name_description,
        select_rate_field=equipment_rate_field,
    ),
    ResourceKind.LOCATION: ResourceLink(
        kind=ResourceKind.LOCATION,
        collection="locations",
        link_field="linkedLocationId",
        model=Location,
        description_fields=("name",),
        rate_fields=("rentalCost",),
        compose_description=name_description,
        select_rate_field=rental_rate_field,
    ),
}


def link_for(kind: ResourceKind) -> ResourceLink:
    """Get the linkage rules for a resource kind (accepts the enum or its value)."""
    return LINKS[ResourceKind(kind)]
