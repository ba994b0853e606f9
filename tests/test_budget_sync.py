from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from production_sync.budget_sync import BudgetSyncPropagator
from production_sync.models import BudgetItem
from production_sync.models import PropagationOutcome
from production_sync.models import ResourceKind
from production_sync.store import MemoryDocumentStore

from conftest import FailingStore

# Mark all tests in this file as async
pytestmark = pytest.mark.asyncio

BUDGET = "budgetCategories"


async def budget_item(store, item_id: str) -> BudgetItem:
    return BudgetItem.from_document(await store.get(BUDGET, item_id))


async def test_equipment_daily_rate_updates_rate_and_amount(store, settings):
    """A day-unit item follows dailyRate and keeps estimatedAmount == rate * quantity."""
    store.seed("equipment", {"id": "eq-1", "name": "ARRI Alexa", "dailyRate": 500})
    store.seed(BUDGET, {
        "id": "b-1", "linkedEquipmentId": "eq-1", "description": "ARRI Alexa",
        "unit": "days", "unitRate": 500, "quantity": 3, "estimatedAmount": 1500,
    })

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.EQUIPMENT, "eq-1", {"dailyRate": 600}
    )

    assert result.outcome is PropagationOutcome.PROPAGATED
    assert result.updated_item_ids == ["b-1"]
    item = await budget_item(store, "b-1")
    assert item.unit_rate == 600
    assert item.estimated_amount == pytest.approx(1800)
    assert item.description == "ARRI Alexa"


async def test_equipment_weekly_unit_uses_weekly_rate(store, settings):
    store.seed(BUDGET, {
        "id": "b-1", "linkedEquipmentId": "eq-1", "unit": "Weeks",
        "unitRate": 2000, "quantity": 2, "estimatedAmount": 4000,
    })

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.EQUIPMENT, "eq-1", {"dailyRate": 450, "weeklyRate": 2200}
    )

    assert result.outcome is PropagationOutcome.PROPAGATED
    item = await budget_item(store, "b-1")
    assert item.unit_rate == 2200
    assert item.estimated_amount == pytest.approx(4400)


async def test_equipment_unknown_unit_leaves_rate_untouched(store, settings):
    store.seed(BUDGET, {
        "id": "b-1", "linkedEquipmentId": "eq-1", "unit": "flat",
        "unitRate": 900, "quantity": 1, "estimatedAmount": 900,
    })

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.EQUIPMENT, "eq-1", {"dailyRate": 600}
    )

    assert result.outcome is PropagationOutcome.SKIPPED
    assert store.commit_count == 0
    item = await budget_item(store, "b-1")
    assert item.unit_rate == 900


async def test_item_without_unit_rate_is_not_rate_synced(store, settings):
    store.seed(BUDGET, {"id": "b-1", "linkedCrewMemberId": "crew-1", "quantity": 5})

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.CREW, "crew-1", {"rate": 750}
    )

    assert result.outcome is PropagationOutcome.SKIPPED
    item = await budget_item(store, "b-1")
    assert item.unit_rate is None
    assert item.estimated_amount is None


async def test_crew_name_change_composes_with_stored_role(store, settings):
    store.seed("crew", {"id": "crew-1", "name": "Dana Reyes", "role": "Gaffer"})
    store.seed(BUDGET, {"id": "b-1", "linkedCrewMemberId": "crew-1", "description": "Dana Reyes - Gaffer"})

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.CREW, "crew-1", {"name": "Dana Reyes-Ortiz"}
    )

    assert result.outcome is PropagationOutcome.PROPAGATED
    item = await budget_item(store, "b-1")
    assert item.description == "Dana Reyes-Ortiz - Gaffer"


async def test_crew_description_falls_back_to_present_half(store, settings):
    store.seed(BUDGET, {"id": "b-1", "linkedCrewMemberId": "crew-1", "description": "old"})

    await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.CREW, "crew-1", {"role": "Key Grip"}
    )

    item = await budget_item(store, "b-1")
    assert item.description == "Key Grip"


async def test_cast_description_and_rate(store, settings):
    store.seed("cast", {"id": "cast-1", "actorName": "Sam Lee", "characterName": "Detective"})
    store.seed(BUDGET, {
        "id": "b-1", "linkedCastMemberId": "cast-1", "description": "Sam Lee as Detective",
        "unit": "days", "unitRate": 1000, "quantity": 4, "estimatedAmount": 4000,
    })

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.CAST, "cast-1", {"characterName": "Inspector", "rate": 1250}
    )

    assert result.outcome is PropagationOutcome.PROPAGATED
    item = await budget_item(store, "b-1")
    assert item.description == "Sam Lee as Inspector"
    assert item.unit_rate == 1250
    assert item.estimated_amount == pytest.approx(5000)


async def test_cast_description_with_only_character(store, settings):
    store.seed(BUDGET, {"id": "b-1", "linkedCastMemberId": "cast-9"})

    await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.CAST, "cast-9", {"characterName": "Narrator"}
    )

    item = await budget_item(store, "b-1")
    assert item.description == "Narrator"


async def test_location_rental_cost(store, settings):
    store.seed(BUDGET, {
        "id": "b-1", "linkedLocationId": "loc-1", "unit": "days",
        "unitRate": 300, "quantity": 2, "estimatedAmount": 600,
    })

    result = await BudgetSyncPropagator(store, settings).propagate(
        "location", "loc-1", {"rentalCost": 350, "name": "Old Mill"}
    )

    assert result.kind is ResourceKind.LOCATION
    item = await budget_item(store, "b-1")
    assert item.description == "Old Mill"
    assert item.estimated_amount == pytest.approx(700)


async def test_rate_without_quantity_keeps_amount(store, settings):
    store.seed(BUDGET, {"id": "b-1", "linkedCrewMemberId": "crew-1", "unitRate": 500, "estimatedAmount": 500})

    await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"rate": 650})

    item = await budget_item(store, "b-1")
    assert item.unit_rate == 650
    assert item.estimated_amount == 500


async def test_propagation_writes_only_linked_items(store, settings):
    """Propagating resource A never writes to an item linked to resource B."""
    store.seed(BUDGET, {
        "id": "b-a", "linkedCrewMemberId": "crew-a", "unitRate": 100, "quantity": 2, "estimatedAmount": 200,
    })
    store.seed(BUDGET, {
        "id": "b-b", "linkedCrewMemberId": "crew-b", "unitRate": 100, "quantity": 2, "estimatedAmount": 200,
    })
    store.seed(BUDGET, {
        "id": "b-eq", "linkedEquipmentId": "crew-a", "unit": "days", "unitRate": 100, "quantity": 2,
    })
    untouched_b = await store.get(BUDGET, "b-b")
    untouched_eq = await store.get(BUDGET, "b-eq")

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-a", {"rate": 120})

    assert result.updated_item_ids == ["b-a"]
    assert await store.get(BUDGET, "b-b") == untouched_b
    assert await store.get(BUDGET, "b-eq") == untouched_eq


async def test_all_items_updated_in_one_batch(store, settings):
    for index, quantity in enumerate([1, 2.5, 7]):
        store.seed(BUDGET, {
            "id": f"b-{index}", "linkedCrewMemberId": "crew-1", "unitRate": 300,
            "quantity": quantity, "estimatedAmount": 300 * quantity,
        })

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"rate": 333.33})

    assert sorted(result.updated_item_ids) == ["b-0", "b-1", "b-2"]
    assert store.commit_count == 1
    for document in await store.get_all(BUDGET):
        item = BudgetItem.from_document(document)
        assert item.amount_is_consistent
        assert item.estimated_amount == pytest.approx(333.33 * item.quantity)


async def test_no_linked_items_is_skipped_without_write(store, settings):
    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "nobody", {"rate": 10})

    assert result.outcome is PropagationOutcome.SKIPPED
    assert result.reason == "no linked budget items"
    assert store.commit_count == 0


async def test_irrelevant_change_is_skipped(store, settings):
    store.seed(BUDGET, {"id": "b-1", "linkedCrewMemberId": "crew-1", "unitRate": 100})

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.CREW, "crew-1", {"phone": "555-0100", "department": "Grip"}
    )

    assert result.outcome is PropagationOutcome.SKIPPED
    assert result.reason == "no relevant fields changed"
    assert store.commit_count == 0


async def test_commit_failure_is_reported_not_raised(settings):
    store = FailingStore(fail_commits=True)
    store.seed(BUDGET, {
        "id": "b-1", "linkedCrewMemberId": "crew-1", "unitRate": 100, "quantity": 1, "estimatedAmount": 100,
    })

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"rate": 200})

    assert result.outcome is PropagationOutcome.FAILED
    assert not result.ok
    assert "batch rejected" in result.reason
    item = await budget_item(store, "b-1")
    assert item.unit_rate == 100


async def test_read_failure_is_reported_not_raised(settings):
    store = FailingStore(fail_reads=True)

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CAST, "cast-1", {"rate": 200})

    assert result.outcome is PropagationOutcome.FAILED
    assert result.reason == "store unavailable"


async def test_newer_source_stamp_is_not_overwritten(store, settings):
    edited_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    store.seed(BUDGET, {
        "id": "b-new", "linkedCrewMemberId": "crew-1", "unitRate": 500, "quantity": 1,
        "sourceUpdatedAt": (edited_at + timedelta(minutes=5)).isoformat(),
    })
    store.seed(BUDGET, {
        "id": "b-old", "linkedCrewMemberId": "crew-1", "unitRate": 500, "quantity": 1,
        "sourceUpdatedAt": (edited_at - timedelta(days=1)).isoformat(),
    })

    result = await BudgetSyncPropagator(store, settings).propagate(
        ResourceKind.CREW, "crew-1", {"rate": 450}, source_updated_at=edited_at
    )

    assert result.updated_item_ids == ["b-old"]
    assert (await budget_item(store, "b-new")).unit_rate == 500
    old = await budget_item(store, "b-old")
    assert old.unit_rate == 450
    assert old.source_updated_at == edited_at


async def test_unlink_removes_back_reference_only(store, settings):
    store.seed(BUDGET, {"id": "b-1", "linkedEquipmentId": "eq-1", "description": "Dolly", "unitRate": 80})
    store.seed(BUDGET, {"id": "b-2", "linkedEquipmentId": "eq-2", "description": "Crane"})

    result = await BudgetSyncPropagator(store, settings).unlink(ResourceKind.EQUIPMENT, "eq-1")

    assert result.outcome is PropagationOutcome.PROPAGATED
    unlinked = await store.get(BUDGET, "b-1")
    assert "linkedEquipmentId" not in unlinked
    assert unlinked["description"] == "Dolly"
    assert unlinked["unitRate"] == 80
    assert (await store.get(BUDGET, "b-2"))["linkedEquipmentId"] == "eq-2"


async def test_unlink_failure_is_reported(settings):
    store = FailingStore(fail_commits=True)
    store.seed(BUDGET, {"id": "b-1", "linkedCastMemberId": "cast-1"})

    result = await BudgetSyncPropagator(store, settings).unlink(ResourceKind.CAST, "cast-1")

    assert result.outcome is PropagationOutcome.FAILED


async def test_custom_budget_collection(settings):
    settings.budget_collection = "budgetItems"
    store = MemoryDocumentStore({"budgetItems": [
        {"id": "b-1", "linkedCrewMemberId": "crew-1", "unitRate": 10, "quantity": 3, "estimatedAmount": 30},
    ]})

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"rate": 20})

    assert result.outcome is PropagationOutcome.PROPAGATED
    assert (await store.get("budgetItems", "b-1"))["estimatedAmount"] == 60


async def test_unused_malformed_field_does_not_block_sync(store, settings):
    """actualAmount is owned by the CRUD layer; an empty string there is left alone."""
    store.seed(BUDGET, {
        "id": "b-1", "linkedCrewMemberId": "crew-1", "unitRate": 100, "quantity": 2, "estimatedAmount": 200,
    })
    store.seed(BUDGET, {
        "id": "b-2", "linkedCrewMemberId": "crew-1", "unitRate": 100, "quantity": 1, "estimatedAmount": 100,
        "actualAmount": "",
    })

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"rate": 150})

    assert result.outcome is PropagationOutcome.PROPAGATED
    assert sorted(result.updated_item_ids) == ["b-1", "b-2"]
    assert (await store.get(BUDGET, "b-1"))["estimatedAmount"] == pytest.approx(300)
    second = await store.get(BUDGET, "b-2")
    assert second["estimatedAmount"] == pytest.approx(150)
    assert second["actualAmount"] == ""


async def test_unreadable_item_is_skipped_and_siblings_sync(store, settings):
    store.seed(BUDGET, {
        "id": "b-1", "linkedCrewMemberId": "crew-1", "unitRate": 100, "quantity": 2, "estimatedAmount": 200,
    })
    store.seed(BUDGET, {
        "id": "b-bad", "linkedCrewMemberId": "crew-1", "unitRate": "a lot", "quantity": 1,
    })

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"rate": 150})

    assert result.outcome is PropagationOutcome.PROPAGATED
    assert result.updated_item_ids == ["b-1"]
    assert (await store.get(BUDGET, "b-bad"))["unitRate"] == "a lot"


async def test_role_change_reads_stored_name(store, settings):
    store.seed("crew", {"id": "crew-1", "name": "Dana", "role": "Gaffer", "rate": 450, "phone": "555"})
    store.seed(BUDGET, {"id": "b-1", "linkedCrewMemberId": "crew-1", "description": "Dana - Gaffer"})

    await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"role": "Best Boy"})

    assert (await budget_item(store, "b-1")).description == "Dana - Best Boy"


async def test_unreadable_resource_falls_back_to_changed_fields(store, settings):
    store.seed("crew", {"id": "crew-1", "name": "Dana", "role": "Gaffer", "rate": "tbd"})
    store.seed(BUDGET, {"id": "b-1", "linkedCrewMemberId": "crew-1", "description": "Dana - Gaffer"})

    result = await BudgetSyncPropagator(store, settings).propagate(ResourceKind.CREW, "crew-1", {"role": "Rigger"})

    assert result.outcome is PropagationOutcome.PROPAGATED
    assert (await budget_item(store, "b-1")).description == "Rigger"
