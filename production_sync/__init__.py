"""
Cross-entity consistency engine for film production management.

Keeps derived data consistent across a production's documents and reports
scheduling conflicts. The engine is a library over a document store; UI,
CRUD and authentication live elsewhere and call into it.

Main Components:
- Linkage: which budget item fields reference which resources
- BudgetSyncPropagator: republishes resource edits into linked budget items
- ScheduleConflictDetector: advisory double-booking report for a shooting day
- SceneScheduleMaterializer: creates schedule events from scene/day links
- Stores: in-memory and SQLite document stores behind one interface

Usage:
    from production_sync import BudgetSyncPropagator, ResourceKind, create_store

    store = await create_store()
    propagator = BudgetSyncPropagator(store)
    result = await propagator.propagate(ResourceKind.EQUIPMENT, "eq-1", {"dailyRate": 600})
"""

__version__ = "1.0.0"
__license__ = "MIT"

# Public API for external usage
from production_sync.budget_sync import BudgetSyncPropagator
from production_sync.conflicts import ScheduleConflictDetector
from production_sync.database import SqliteDocumentStore
from production_sync.database import create_store
from production_sync.exceptions import ProductionSyncError
from production_sync.exceptions import SceneNotFoundError
from production_sync.exceptions import StoreError
from production_sync.materializer import SceneScheduleMaterializer
from production_sync.models import BudgetItem
from production_sync.models import ConflictReport
from production_sync.models import MaterializeResult
from production_sync.models import PropagationOutcome
from production_sync.models import PropagationResult
from production_sync.models import ResourceKind
from production_sync.models import Scene
from production_sync.models import ScheduleEvent
from production_sync.store import DocumentStore
from production_sync.store import MemoryDocumentStore
from production_sync.store import Write

__all__ = [
    "BudgetSyncPropagator",
    "ScheduleConflictDetector",
    "SceneScheduleMaterializer",
    "DocumentStore",
    "MemoryDocumentStore",
    "SqliteDocumentStore",
    "Write",
    "create_store",
    "BudgetItem",
    "ConflictReport",
    "MaterializeResult",
    "PropagationOutcome",
    "PropagationResult",
    "ResourceKind",
    "Scene",
    "ScheduleEvent",
    "ProductionSyncError",
    "SceneNotFoundError",
    "StoreError",
]
