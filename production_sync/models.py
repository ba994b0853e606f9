"""
Data models for the production sync engine.

Defines Pydantic models for resources (crew, cast, equipment, locations),
budget items, scenes, shooting days and schedule events, plus the outcome
types returned by the engine components.

Documents in the store use camelCase keys; models expose snake_case
attributes with camelCase aliases and keep any field they do not declare,
since the CRUD layer owns most of each document.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic.alias_generators import to_camel


def _list_or_empty(v: Any) -> Any:
    return [] if v is None else v


class ResourceKind(str, Enum):
    """Kinds of resource a BudgetItem can link to."""

    CREW = "crew"
    CAST = "cast"
    EQUIPMENT = "equipment"
    LOCATION = "location"


class StoreDocument(BaseModel):
    """Base for every model backed by a document store record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="allow",
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Document id within its collection"
    )

    project_id: Optional[str] = Field(
        default=None,
        description="Owning project"
    )

    created_at: Optional[datetime] = Field(
        default=None,
        description="Set by the store when the document is created"
    )

    updated_at: Optional[datetime] = Field(
        default=None,
        description="Set by the store on every write"
    )

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Build a model from a raw store document."""
        return cls.model_validate(document)

    def to_document(self) -> Dict[str, Any]:
        """Export as a camelCase store document."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class CrewMember(StoreDocument):
    """A crew member; budget descriptions read "{name} - {role}"."""

    name: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    rate: Optional[float] = Field(default=None, ge=0)
    rate_type: Optional[str] = Field(
        default=None,
        description="daily / weekly / flat"
    )


class CastMember(StoreDocument):
    """A cast member; budget descriptions read "{actor} as {character}"."""

    actor_name: Optional[str] = None
    character_name: Optional[str] = None
    rate: Optional[float] = Field(default=None, ge=0)


class EquipmentItem(StoreDocument):
    """An equipment item with daily and weekly rental rates."""

    name: Optional[str] = None
    category: Optional[str] = None
    daily_rate: Optional[float] = Field(default=None, ge=0)
    weekly_rate: Optional[float] = Field(default=None, ge=0)


class Location(StoreDocument):
    """A shooting location with a rental cost."""

    name: Optional[str] = None
    address: Optional[str] = None
    rental_cost: Optional[float] = Field(default=None, ge=0)


class BudgetItem(StoreDocument):
    """
    A budget line item.

    ``description``, ``unit_rate`` and ``estimated_amount`` are cached copies
    of the linked resource's fields as of the last propagation. At most one of
    the ``linked_*`` resource ids is set.
    """

    category_id: Optional[str] = None
    description: Optional[str] = None
    unit: Optional[str] = Field(
        default=None,
        description="Free-text unit, e.g. 'days', 'Weeks', 'flat'"
    )
    unit_rate: Optional[float] = None
    quantity: Optional[float] = None
    estimated_amount: Optional[float] = None
    actual_amount: Any = Field(
        default=None,
        description="Kept as stored; the engine never reads it"
    )

    linked_crew_member_id: Optional[str] = None
    linked_cast_member_id: Optional[str] = None
    linked_equipment_id: Optional[str] = None
    linked_location_id: Optional[str] = None
    linked_scene_id: Optional[str] = None
    linked_event_id: Optional[str] = None

    source_updated_at: Optional[datetime] = Field(
        default=None,
        description="Timestamp of the resource edit last propagated into this item"
    )

    @property
    def amount_is_consistent(self) -> bool:
        """Check estimated_amount == unit_rate * quantity when both are present."""
        if self.unit_rate is None or self.quantity is None:
            return True
        if self.estimated_amount is None:
            return False
        return abs(self.estimated_amount - self.unit_rate * self.quantity) < 1e-6


class Scene(StoreDocument):
    """A script scene with its assigned resources and linked shooting days."""

    scene_number: Optional[str] = None
    description: Optional[str] = None
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    cast_ids: List[str] = Field(default_factory=list)
    crew_ids: List[str] = Field(default_factory=list)
    equipment_ids: List[str] = Field(default_factory=list)
    duration: Optional[float] = Field(
        default=None,
        description="Estimated duration in minutes"
    )
    special_requirements: Optional[str] = None
    shooting_day_ids: List[str] = Field(default_factory=list)

    @field_validator("cast_ids", "crew_ids", "equipment_ids", "shooting_day_ids", mode="before")
    @classmethod
    def default_missing_ids(cls, v: Any) -> Any:
        """Id lists stored as null read as empty."""
        return _list_or_empty(v)

    @property
    def display_description(self) -> str:
        """Description used for schedule events created from this scene."""
        if self.description:
            return self.description
        return f"Scene {self.scene_number or ''}".strip()


class ShootingDay(StoreDocument):
    """A single production date."""

    # Stored in whatever shape the scheduling UI writes
    date: Any = None
    day_number: Any = None
    basecamp_location_id: Optional[str] = None
    parking_location_id: Optional[str] = None
    holding_location_id: Optional[str] = None
    contacts: Any = None


class ScheduleEvent(StoreDocument):
    """An entry in a shooting day's running order."""

    shooting_day_id: str
    scene_id: Optional[str] = None
    type: str = "scene"
    description: Optional[str] = None
    scene_number: Optional[str] = None
    location_id: Optional[str] = None
    location: Optional[str] = None
    cast_ids: List[str] = Field(default_factory=list)
    crew_ids: List[str] = Field(default_factory=list)
    equipment_ids: List[str] = Field(default_factory=list)
    duration: Optional[float] = None
    notes: Optional[str] = None
    order: int = Field(default=0, ge=0)

    @field_validator("order", mode="before")
    @classmethod
    def default_missing_order(cls, v: Any) -> Any:
        """Events written without an order sort as 0."""
        return 0 if v is None else v

    @field_validator("cast_ids", "crew_ids", "equipment_ids", mode="before")
    @classmethod
    def default_missing_ids(cls, v: Any) -> Any:
        return _list_or_empty(v)

    def ids_for(self, kind: ResourceKind) -> List[str]:
        """Resource ids this event commits for the given kind."""
        if kind is ResourceKind.CREW:
            return self.crew_ids
        if kind is ResourceKind.CAST:
            return self.cast_ids
        if kind is ResourceKind.EQUIPMENT:
            return self.equipment_ids
        return [self.location_id] if self.location_id else []


class PropagationOutcome(str, Enum):
    """Result variants of a budget propagation or unlink call."""

    PROPAGATED = "propagated"
    SKIPPED = "skipped"
    FAILED = "failed"


class PropagationResult(BaseModel):
    """
    Outcome of one Budget Sync Propagator call.

    Failures are reported here instead of raised: a propagation must never
    fail the resource edit that triggered it.
    """

    outcome: PropagationOutcome
    kind: ResourceKind
    resource_id: str
    updated_item_ids: List[str] = Field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def propagated(cls, kind: ResourceKind, resource_id: str, item_ids: List[str]) -> "PropagationResult":
        return cls(
            outcome=PropagationOutcome.PROPAGATED,
            kind=kind,
            resource_id=resource_id,
            updated_item_ids=item_ids,
        )

    @classmethod
    def skipped(cls, kind: ResourceKind, resource_id: str, reason: str) -> "PropagationResult":
        return cls(
            outcome=PropagationOutcome.SKIPPED,
            kind=kind,
            resource_id=resource_id,
            reason=reason,
        )

    @classmethod
    def failed(cls, kind: ResourceKind, resource_id: str, reason: str) -> "PropagationResult":
        return cls(
            outcome=PropagationOutcome.FAILED,
            kind=kind,
            resource_id=resource_id,
            reason=reason,
        )

    @property
    def ok(self) -> bool:
        return self.outcome is not PropagationOutcome.FAILED


class ConflictReport(BaseModel):
    """
    Advisory double-booking report for one scene on one shooting day.

    When the underlying read failed the id lists are empty and ``error``
    holds the reason; an empty report is only a real "no conflicts" answer
    when ``degraded`` is False.
    """

    crew: List[str] = Field(default_factory=list)
    cast: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)
    location: bool = False
    error: Optional[str] = None

    @property
    def has_conflicts(self) -> bool:
        return bool(self.crew or self.cast or self.equipment or self.location)

    @property
    def degraded(self) -> bool:
        """True when the check could not be performed."""
        return self.error is not None


class MaterializeResult(BaseModel):
    """Summary of one Scene-to-Schedule materialization."""

    scene_id: str
    created_event_ids: List[str] = Field(default_factory=list)
    skipped_day_ids: List[str] = Field(
        default_factory=list,
        description="Days already covered by an event for this scene"
    )
    missing_day_ids: List[str] = Field(
        default_factory=list,
        description="Requested days with no ShootingDay document"
    )

    @property
    def created_count(self) -> int:
        return len(self.created_event_ids)
