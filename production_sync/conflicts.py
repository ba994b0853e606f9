"""
Schedule conflict detection.

Reports crew, cast and equipment already committed to another event on the
same shooting day. The report is advisory: it never blocks an assignment,
and a failed read yields an empty report flagged with the error.
"""

import logging
from typing import Iterable
from typing import List
from typing import Optional

from production_sync.models import ConflictReport
from production_sync.models import ResourceKind
from production_sync.models import ScheduleEvent
from production_sync.settings import Settings
from production_sync.settings import get_settings
from production_sync.store import DocumentStore

logger = logging.getLogger(__name__)


def _collisions(candidates: Iterable[str], events: List[ScheduleEvent], kind: ResourceKind) -> List[str]:
    """Candidate ids present in any event, in candidate order, each once."""
    committed = set()
    for event in events:
        committed.update(event.ids_for(kind))

    found: List[str] = []
    for resource_id in candidates:
        if resource_id in committed and resource_id not in found:
            found.append(resource_id)
    return found


class ScheduleConflictDetector:
    """Detect double-booked resources on a shooting day."""

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    async def detect_conflicts(
        self,
        project_id: str,
        scene_id: Optional[str],
        shooting_day_id: str,
        cast_ids: Iterable[str] = (),
        crew_ids: Iterable[str] = (),
        equipment_ids: Iterable[str] = (),
        location_id: Optional[str] = None,
    ) -> ConflictReport:
        """
        Check a proposed assignment against the other events of the day.

        Events belonging to ``scene_id`` are ignored, so a scene never
        conflicts with itself.

        Args:
            project_id: Project owning the shooting day
            scene_id: Scene being assigned
            shooting_day_id: Day the scene is being assigned to
            cast_ids: Proposed cast
            crew_ids: Proposed crew
            equipment_ids: Proposed equipment
            location_id: Optional proposed location; flags a shared location

        Returns:
            ConflictReport listing each conflicting id once per kind
        """
        try:
            documents = await self.store.get_all(
                self.settings.schedule_events_collection,
                {"projectId": project_id, "shootingDayId": shooting_day_id},
            )
            others = [
                event
                for event in (ScheduleEvent.from_document(doc) for doc in documents)
                if scene_id is None or event.scene_id != scene_id
            ]
        except Exception as exc:
            logger.error(
                f"Conflict check failed for scene {scene_id} on day {shooting_day_id}: {exc}",
                exc_info=True,
            )
            return ConflictReport(error=str(exc))

        report = ConflictReport(
            crew=_collisions(crew_ids, others, ResourceKind.CREW),
            cast=_collisions(cast_ids, others, ResourceKind.CAST),
            equipment=_collisions(equipment_ids, others, ResourceKind.EQUIPMENT),
            location=bool(location_id) and any(event.location_id == location_id for event in others),
        )

        if report.has_conflicts:
            logger.info(
                f"Scene {scene_id} on day {shooting_day_id}: {len(report.crew)} crew, "
                f"{len(report.cast)} cast, {len(report.equipment)} equipment conflicts"
            )
        return report
