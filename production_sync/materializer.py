"""
Scene-to-schedule materialization.

Turns a scene's shooting-day links into "scene" schedule events, one per
(scene, day) pair. Events are appended to the end of each day's running
order and existing pairs are skipped, so repeated calls are harmless.

Unlike budget sync this path is fail-closed: schedule views depend on the
events existing, so any error is logged and re-raised.
"""

import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence

from production_sync.exceptions import SceneNotFoundError
from production_sync.models import MaterializeResult
from production_sync.models import Scene
from production_sync.models import ScheduleEvent
from production_sync.models import ShootingDay
from production_sync.settings import Settings
from production_sync.settings import get_settings
from production_sync.store import DocumentStore
from production_sync.store import Write

logger = logging.getLogger(__name__)


def next_order(events: Sequence[ScheduleEvent]) -> int:
    """Order for an event appended after ``events``: max(order) + 1, or 1."""
    return max((event.order for event in events), default=0) + 1


def event_from_scene(scene: Scene, shooting_day_id: str, order: int) -> Dict[str, Any]:
    """Build the document of a schedule event copied from a scene."""
    return {
        "shootingDayId": shooting_day_id,
        "projectId": scene.project_id,
        "type": "scene",
        "description": scene.display_description,
        "sceneId": scene.id,
        "sceneNumber": scene.scene_number,
        "locationId": scene.location_id,
        "location": scene.location_name or "",
        "castIds": list(scene.cast_ids),
        "crewIds": list(scene.crew_ids),
        "equipmentIds": list(scene.equipment_ids),
        "duration": scene.duration,
        "notes": scene.special_requirements or "",
        "order": order,
    }


class SceneScheduleMaterializer:
    """Create schedule events for a scene's shooting days."""

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    async def materialize(self, scene_id: str, shooting_day_ids: Sequence[str]) -> MaterializeResult:
        """
        Create one event per requested day not yet covered for this scene.

        Args:
            scene_id: Scene to schedule
            shooting_day_ids: Days the scene is linked to

        Returns:
            MaterializeResult with created, skipped and missing days

        Raises:
            SceneNotFoundError: if the scene does not exist
            StoreError: if a read or the batch commit fails
        """
        try:
            result = await self._materialize(scene_id, shooting_day_ids)
        except Exception as exc:
            logger.error(f"Error materializing scene {scene_id} to schedule: {exc}")
            raise

        if result.created_event_ids:
            logger.info(f"Materialized scene {scene_id} onto {result.created_count} shooting days")
        return result

    async def _materialize(self, scene_id: str, shooting_day_ids: Sequence[str]) -> MaterializeResult:
        events_collection = self.settings.schedule_events_collection

        document = await self.store.get(self.settings.scenes_collection, scene_id)
        if document is None:
            raise SceneNotFoundError(self.settings.scenes_collection, scene_id)
        scene = Scene.from_document(document)

        scene_filters = {"sceneId": scene_id}
        if scene.project_id:
            scene_filters["projectId"] = scene.project_id
        existing = await self.store.get_all(events_collection, scene_filters)
        covered = {doc.get("shootingDayId") for doc in existing}

        result = MaterializeResult(scene_id=scene_id)
        writes: List[Write] = []
        for day_id in dict.fromkeys(shooting_day_ids):
            if day_id in covered:
                result.skipped_day_ids.append(day_id)
                continue

            day_document = await self.store.get(self.settings.shooting_days_collection, day_id)
            if day_document is None:
                logger.warning(f"Shooting day {day_id} not found, skipping scene {scene_id}")
                result.missing_day_ids.append(day_id)
                continue

            day = ShootingDay.from_document(day_document)
            if day.project_id and scene.project_id and day.project_id != scene.project_id:
                logger.warning(
                    f"Shooting day {day_id} belongs to project {day.project_id}, "
                    f"not {scene.project_id}; skipping scene {scene_id}"
                )
                result.missing_day_ids.append(day_id)
                continue

            day_events = [
                ScheduleEvent.from_document(doc)
                for doc in await self.store.get_all(events_collection, {"shootingDayId": day_id})
            ]
            event_id = self.store.new_id()
            writes.append(
                Write.create(events_collection, event_id, event_from_scene(scene, day_id, next_order(day_events)))
            )
            result.created_event_ids.append(event_id)

        await self.store.commit_batch(writes)
        return result
