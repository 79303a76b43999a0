from datetime import datetime, timezone

import pytest

from vista.errors import ConflictError, NotFoundError, ValidationError
from vista.models.apartment import ApartmentStatus
from vista.models.buyer import BuyerStatus
from vista.models.floor import FloorStatus, Hotspot
from vista.models.picture import PictureType
from vista.modules.catalog.filters import ListFilter
from vista.stores.base import Operator


def _apartment(floor_id, lot, **extra):
    return {"floor_id": floor_id, "lot_number": lot, "area": 50.0, "price": 100000, **extra}


def _buyer(**extra):
    return {"name": "Ana", "contact": {"email": "ana@example.com", "phone": "+1555"}, **extra}


# --- Floors ---

async def test_create_floor_assigns_id_and_timestamps(catalog):
    floor_id = await catalog.floors.create({"number": 2, "name": "First", "status": "ACTIVE"})

    floor = await catalog.floors.get_by_id(floor_id)
    assert floor.id == floor_id
    assert floor.status is FloorStatus.ACTIVE
    assert floor.apartment_count == 0
    assert floor.created_at == floor.updated_at


async def test_create_ignores_server_fields(catalog):
    floor_id = await catalog.floors.create({"id": "mine", "number": 2, "name": "First", "apartment_count": 9})

    floor = await catalog.floors.get_by_id(floor_id)
    assert floor_id != "mine"
    assert floor.apartment_count == 0


async def test_create_floor_validation(catalog):
    with pytest.raises(ValidationError):
        await catalog.floors.create({"name": "No number"})
    with pytest.raises(ValidationError):
        await catalog.floors.create({"number": 0, "name": "Zero"})
    with pytest.raises(ValidationError):
        await catalog.floors.create({"number": 3, "name": "Typo", "stauts": "ACTIVE"})


async def test_floor_number_is_unique(catalog, floor_id):
    with pytest.raises(ValidationError):
        await catalog.floors.create({"number": 1, "name": "Duplicate"})

    other = await catalog.floors.create({"number": 2, "name": "First"})
    with pytest.raises(ValidationError):
        await catalog.floors.update(other, {"number": 1})


async def test_update_refreshes_updated_at(catalog, floor_id):
    before = await catalog.floors.get_by_id(floor_id)

    await catalog.floors.update(floor_id, {"name": "Lobby"})

    after = await catalog.floors.get_by_id(floor_id)
    assert after.name == "Lobby"
    assert after.number == before.number
    assert after.created_at == before.created_at
    assert after.updated_at >= before.updated_at


async def test_update_missing_is_not_found(catalog):
    with pytest.raises(NotFoundError):
        await catalog.floors.update("nope", {"name": "x"})


async def test_update_rejects_server_fields(catalog, floor_id):
    with pytest.raises(ValidationError):
        await catalog.floors.update(floor_id, {"apartment_count": 5})
    with pytest.raises(ValidationError):
        await catalog.floors.update(floor_id, {"id": "other"})


async def test_get_missing_is_not_found(catalog):
    with pytest.raises(NotFoundError):
        await catalog.floors.get_by_id("nope")
    assert await catalog.floors.find("nope") is None


async def test_delete_floor_without_apartments(catalog, floor_id):
    await catalog.floors.delete(floor_id)
    assert await catalog.floors.find(floor_id) is None


async def test_delete_floor_with_apartments_conflicts(catalog, floor_id, apartment_id):
    with pytest.raises(ConflictError):
        await catalog.floors.delete(floor_id)

    assert (await catalog.floors.get_by_id(floor_id)).apartment_count == 1
    assert (await catalog.apartments.get_by_id(apartment_id)).floor_id == floor_id


async def test_delete_missing_floor(catalog):
    with pytest.raises(NotFoundError):
        await catalog.floors.delete("nope")


async def test_floors_by_status(catalog, floor_id):
    await catalog.floors.create({"number": 2, "name": "Works", "status": "UNDER_CONSTRUCTION"})

    building = await catalog.floors.by_status(FloorStatus.UNDER_CONSTRUCTION)

    assert [f.name for f in building] == ["Works"]


async def test_update_hotspots(catalog, floor_id, apartment_id):
    top = [Hotspot(apartment_id=apartment_id, x=10, y=20, label="A101")]
    angles = {"1": [Hotspot(apartment_id=apartment_id, x=50, y=50)]}

    await catalog.floors.update_hotspots(floor_id, top_view=top, angle_hotspots=angles)

    floor = await catalog.floors.get_by_id(floor_id)
    assert floor.top_view_hotspots[0].label == "A101"
    assert floor.angle_hotspots["1"][0].x == 50


async def test_hotspot_coordinates_are_percentages(catalog, floor_id):
    with pytest.raises(ValidationError):
        await catalog.floors.update(floor_id, {"top_view_hotspots": [{"apartment_id": "a", "x": 120, "y": 0}]})


# --- Apartments ---

async def test_apartment_requires_existing_floor(catalog):
    with pytest.raises(ValidationError):
        await catalog.apartments.create(_apartment("ghost", "A1"))


async def test_apartment_field_constraints(catalog, floor_id):
    with pytest.raises(ValidationError):
        await catalog.apartments.create(_apartment(floor_id, "A1", area=0))
    with pytest.raises(ValidationError):
        await catalog.apartments.create(_apartment(floor_id, "A1", price=-1))
    with pytest.raises(ValidationError):
        await catalog.apartments.create(_apartment(floor_id, "A1", status="LEASED"))


async def test_lot_number_unique_within_floor(catalog, floor_id, apartment_id):
    with pytest.raises(ValidationError):
        await catalog.apartments.create(_apartment(floor_id, "A101"))

    other_floor = await catalog.floors.create({"number": 2, "name": "First"})
    await catalog.apartments.create(_apartment(other_floor, "A101"))


async def test_apartment_count_follows_creates_and_deletes(catalog, floor_id):
    ids = [await catalog.apartments.create(_apartment(floor_id, f"L{i}")) for i in range(4)]
    assert (await catalog.floors.get_by_id(floor_id)).apartment_count == 4

    await catalog.apartments.delete(ids[0])
    await catalog.apartments.delete(ids[2])
    assert (await catalog.floors.get_by_id(floor_id)).apartment_count == 2

    await catalog.apartments.create(_apartment(floor_id, "L9"))
    live = len(await catalog.apartments.by_floor(floor_id))
    assert (await catalog.floors.get_by_id(floor_id)).apartment_count == live == 3


async def test_moving_apartment_recounts_both_floors(catalog, floor_id, apartment_id):
    second = await catalog.floors.create({"number": 2, "name": "First"})

    await catalog.apartments.update(apartment_id, {"floor_id": second})

    assert (await catalog.floors.get_by_id(floor_id)).apartment_count == 0
    assert (await catalog.floors.get_by_id(second)).apartment_count == 1


async def test_moving_apartment_to_missing_floor(catalog, apartment_id):
    with pytest.raises(ValidationError):
        await catalog.apartments.update(apartment_id, {"floor_id": "ghost"})


async def test_delete_apartment_removes_pictures(catalog, apartment_id):
    await catalog.pictures.create({"apartment_id": apartment_id, "url": "u1"})
    await catalog.pictures.create({"apartment_id": apartment_id, "url": "u2"})

    await catalog.apartments.delete(apartment_id)

    assert await catalog.pictures.for_apartment(apartment_id) == []


async def test_apartment_queries(catalog, floor_id):
    await catalog.apartments.create(_apartment(floor_id, "A", price=90000, type="studio"))
    await catalog.apartments.create(_apartment(floor_id, "B", price=150000, type="2BR", status="SOLD"))
    await catalog.apartments.create(_apartment(floor_id, "C", price=210000, type="2BR"))

    assert [a.lot_number for a in await catalog.apartments.by_status(ApartmentStatus.SOLD)] == ["B"]
    assert sorted(a.lot_number for a in await catalog.apartments.by_type("2BR")) == ["B", "C"]
    assert [a.lot_number for a in await catalog.apartments.by_price_range(100000, 250000)] == ["B", "C"]
    assert [a.lot_number for a in await catalog.apartments.by_price_range(None, 150000)] == ["A", "B"]


async def test_list_rejects_two_range_fields(catalog):
    with pytest.raises(ValidationError):
        await catalog.apartments.list(ListFilter(ranges={"price": (1, 2), "area": (1, 2)}))


async def test_list_rejects_unknown_fields(catalog):
    with pytest.raises(ValidationError):
        await catalog.apartments.list(ListFilter(equals={"colour": "red"}))


async def test_list_without_filter_is_full_scan(catalog, floor_id):
    for lot in ["A", "B", "C"]:
        await catalog.apartments.create(_apartment(floor_id, lot))

    assert len(await catalog.apartments.list()) == 3


async def test_list_combines_filters_with_and(catalog, floor_id):
    await catalog.apartments.create(_apartment(floor_id, "A", price=100, status="SOLD"))
    await catalog.apartments.create(_apartment(floor_id, "B", price=200, status="SOLD"))
    await catalog.apartments.create(_apartment(floor_id, "C", price=300, status="AVAILABLE"))

    found = await catalog.apartments.list(
        ListFilter(equals={"status": ApartmentStatus.SOLD}, ranges={"price": (150, None)})
    )

    assert [a.lot_number for a in found] == ["B"]


def test_filter_predicates_encode_values():
    moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    predicates = ListFilter(
        equals={"status": BuyerStatus.INTERESTED},
        ranges={"created_at": (moment, None)},
        contains={"interested_apartment_ids": "A1"},
    ).predicates()

    assert [(p.field, p.op, p.value) for p in predicates] == [
        ("status", Operator.EQ, "INTERESTED"),
        ("created_at", Operator.GTE, "2026-01-02T03:04:05.000000Z"),
        ("interested_apartment_ids", Operator.ARRAY_CONTAINS, "A1"),
    ]


# --- Pictures ---

async def test_picture_requires_existing_apartment(catalog):
    with pytest.raises(ValidationError):
        await catalog.pictures.create({"apartment_id": "ghost", "url": "u"})


async def test_picture_has_no_updated_at(catalog, apartment_id):
    picture_id = await catalog.pictures.create({"apartment_id": apartment_id, "url": "u", "type": "MAIN"})

    picture = await catalog.pictures.get_by_id(picture_id)
    assert picture.type is PictureType.MAIN
    assert not hasattr(picture, "updated_at")


async def test_pictures_append_by_default(catalog, apartment_id):
    assert await catalog.pictures.next_order(apartment_id) == 0

    first = await catalog.pictures.create({"apartment_id": apartment_id, "url": "u1"})
    await catalog.pictures.create({"apartment_id": apartment_id, "url": "u2", "order": 5})
    third = await catalog.pictures.create({"apartment_id": apartment_id, "url": "u3"})

    assert (await catalog.pictures.get_by_id(first)).order == 0
    assert (await catalog.pictures.get_by_id(third)).order == 6


async def test_reorder_pictures(catalog, apartment_id):
    ids = [await catalog.pictures.create({"apartment_id": apartment_id, "url": f"u{i}"}) for i in range(3)]

    await catalog.pictures.reorder(apartment_id, [ids[2], ids[0], ids[1]])

    orders = {p.id: p.order for p in await catalog.pictures.for_apartment(apartment_id)}
    assert orders == {ids[2]: 0, ids[0]: 1, ids[1]: 2}


async def test_reorder_rejects_foreign_pictures(catalog, apartment_id):
    own = await catalog.pictures.create({"apartment_id": apartment_id, "url": "u"})

    with pytest.raises(ValidationError):
        await catalog.pictures.reorder(apartment_id, ["someone-else", own])
    assert (await catalog.pictures.get_by_id(own)).order == 0


async def test_delete_for_apartment(catalog, apartment_id):
    for i in range(3):
        await catalog.pictures.create({"apartment_id": apartment_id, "url": f"u{i}"})

    assert await catalog.pictures.delete_for_apartment(apartment_id) == 3
    assert await catalog.pictures.for_apartment(apartment_id) == []


# --- Buyers ---

async def test_buyer_defaults(catalog):
    buyer_id = await catalog.buyers.create(_buyer())

    buyer = await catalog.buyers.get_by_id(buyer_id)
    assert buyer.status is BuyerStatus.INTERESTED
    assert buyer.interested_apartment_ids == []


@pytest.mark.parametrize("retired", ["VIEWING_SCHEDULED", "CONTRACTED"])
async def test_retired_buyer_statuses_are_rejected(catalog, retired):
    with pytest.raises(ValidationError, match="no longer used"):
        await catalog.buyers.create(_buyer(status=retired))

    buyer_id = await catalog.buyers.create(_buyer())
    with pytest.raises(ValidationError):
        await catalog.buyers.update(buyer_id, {"status": retired})


async def test_buyer_contact_required(catalog):
    with pytest.raises(ValidationError):
        await catalog.buyers.create({"name": "No contact"})


async def test_buyers_interested_in(catalog, apartment_id):
    interested = await catalog.buyers.create(_buyer(interested_apartment_ids=[apartment_id, "ghost-id"]))
    await catalog.buyers.create(_buyer(name="Other"))

    assert [b.id for b in await catalog.buyers.interested_in(apartment_id)] == [interested]


async def test_buyers_by_status(catalog):
    await catalog.buyers.create(_buyer(status="NEGOTIATING"))
    await catalog.buyers.create(_buyer(status="PURCHASED"))

    assert [b.status for b in await catalog.buyers.by_status("PURCHASED")] == [BuyerStatus.PURCHASED]


async def test_buyers_created_between(catalog, document_store):
    first = await catalog.buyers.create(_buyer(name="First"))
    second = await catalog.buyers.create(_buyer(name="Second"))
    await document_store.update("buyers", first, {"created_at": "2026-01-01T00:00:00.000000Z"})
    await document_store.update("buyers", second, {"created_at": "2026-03-01T00:00:00.000000Z"})

    window = await catalog.buyers.created_between(datetime(2026, 2, 1, tzinfo=timezone.utc), None)
    assert [b.id for b in window] == [second]

    everything = await catalog.buyers.created_between(None, datetime(2026, 3, 1, tzinfo=timezone.utc))
    assert [b.id for b in everything] == [first, second]
