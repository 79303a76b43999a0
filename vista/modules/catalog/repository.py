"""
Catalog Repository: CRUD and relationship queries for floors, apartments, pictures
and buyers over the document store.

Writes run inside ``store.transaction()`` so that parent checks, uniqueness checks,
cascades and the floor apartment recount commit together. On Postgres that is a
SERIALIZABLE transaction; on a store without real transactions a Floor delete can
still race an Apartment create and leave an orphan, which is the accepted gap.
"""

import logging
from typing import Any, ClassVar, Generic, TypeVar
from uuid import uuid4

import pydantic
from pydantic import BaseModel

from vista.errors import ConflictError, NotFoundError, StoreError, ValidationError
from vista.models.apartment import Apartment, ApartmentStatus
from vista.models.buyer import RETIRED_BUYER_STATUSES, Buyer, BuyerStatus
from vista.models.common import utcnow
from vista.models.floor import Floor, FloorStatus, Hotspot
from vista.models.picture import Picture
from vista.modules.catalog.filters import ListFilter
from vista.stores.base import DocumentStore, Operator, Predicate

logger = logging.getLogger(__name__)

FLOORS = "floors"
APARTMENTS = "apartments"
PICTURES = "pictures"
BUYERS = "buyers"

T = TypeVar("T", bound=BaseModel)


def _describe_errors(error: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'document'}: {err['msg']}" for err in error.errors()
    )


class DocumentRepository(Generic[T]):
    collection: ClassVar[str]
    model: ClassVar[type[BaseModel]]
    # assigned by the repository; ignored on create, rejected on update
    server_fields: ClassVar[frozenset[str]] = frozenset({"id", "created_at", "updated_at"})
    has_updated_at: ClassVar[bool] = True

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    # --- Reads ---

    async def get_by_id(self, doc_id: str) -> T:
        entity = await self.find(doc_id)
        if entity is None:
            raise NotFoundError(f"{self.entity_name} {doc_id} not found")
        return entity

    async def find(self, doc_id: str) -> T | None:
        doc = await self._store.get(self.collection, doc_id)
        return self._load(doc) if doc is not None else None

    async def list(self, filter: ListFilter | None = None) -> list[T]:
        """No filter means a full scan of the collection."""
        filter = filter or ListFilter()
        filter.check_supported()
        self._check_field_names(filter.fields())
        docs = await self._store.query(
            self.collection,
            filter.predicates(),
            order_by=filter.order_by,
            descending=filter.descending,
            limit=filter.limit,
        )
        return [self._load(doc) for doc in docs]

    # --- Writes ---

    async def create(self, fields: dict[str, Any]) -> str:
        fields = {k: v for k, v in fields.items() if k not in self.server_fields}
        self._check_field_names(fields)
        self._normalize(fields)

        now = utcnow()
        doc_id = str(uuid4())
        fields.update(id=doc_id, created_at=now)
        if self.has_updated_at:
            fields["updated_at"] = now

        async with self._store.transaction() as tx:
            await self._apply_defaults(tx, fields)
            entity = self._build(fields)
            await self._check(tx, entity, None)
            await tx.create(self.collection, doc_id, entity.model_dump(mode="json"))
            await self._after_write(tx, entity, None)

        logger.info("%s %s created", self.entity_name, doc_id)
        return doc_id

    async def update(self, doc_id: str, partial: dict[str, Any]) -> None:
        if not partial:
            raise ValidationError(f"No fields to update on {self.entity_name} {doc_id}")
        rejected = set(partial) & self.server_fields
        if rejected:
            raise ValidationError(f"Fields {', '.join(sorted(rejected))} cannot be updated")
        self._check_field_names(partial)
        partial = dict(partial)
        self._normalize(partial)

        async with self._store.transaction() as tx:
            current = await tx.get(self.collection, doc_id)
            if current is None:
                raise NotFoundError(f"{self.entity_name} {doc_id} not found")
            previous = self._load(current)

            changed = dict(partial)
            if self.has_updated_at:
                changed["updated_at"] = utcnow()
            entity = self._build({**current, **changed})
            await self._check(tx, entity, previous)

            serialized = entity.model_dump(mode="json")
            await tx.update(self.collection, doc_id, {k: serialized[k] for k in changed})
            await self._after_write(tx, entity, previous)

        logger.info("%s %s updated: %s", self.entity_name, doc_id, sorted(partial))

    async def delete(self, doc_id: str) -> None:
        async with self._store.transaction() as tx:
            current = await tx.get(self.collection, doc_id)
            if current is None:
                raise NotFoundError(f"{self.entity_name} {doc_id} not found")
            entity = self._load(current)
            await self._before_delete(tx, entity)
            await tx.delete(self.collection, doc_id)
            await self._after_delete(tx, entity)

        logger.info("%s %s deleted", self.entity_name, doc_id)

    # --- Hooks ---

    def _normalize(self, fields: dict[str, Any]) -> None:
        pass

    async def _apply_defaults(self, tx: DocumentStore, fields: dict[str, Any]) -> None:
        pass

    async def _check(self, tx: DocumentStore, entity: T, previous: T | None) -> None:
        pass

    async def _after_write(self, tx: DocumentStore, entity: T, previous: T | None) -> None:
        pass

    async def _before_delete(self, tx: DocumentStore, entity: T) -> None:
        pass

    async def _after_delete(self, tx: DocumentStore, entity: T) -> None:
        pass

    # ---------- Helpers ----------

    def _build(self, fields: dict[str, Any]) -> T:
        try:
            return self.model.model_validate(fields)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid {self.entity_name}: {_describe_errors(e)}") from e

    def _load(self, doc: dict[str, Any]) -> T:
        try:
            return self.model.model_validate(doc)
        except pydantic.ValidationError as e:
            logger.error("Stored %s %s is malformed: %s", self.entity_name, doc.get("id"), e)
            raise StoreError(f"Stored {self.entity_name} {doc.get('id')} is malformed") from e

    def _check_field_names(self, names) -> None:
        unknown = set(names) - set(self.model.model_fields)
        if unknown:
            raise ValidationError(f"Unknown {self.entity_name} fields: {', '.join(sorted(unknown))}")


async def count_apartments(store: DocumentStore, floor_id: str) -> int:
    docs = await store.query(APARTMENTS, [Predicate("floor_id", Operator.EQ, floor_id)])
    return len(docs)


async def refresh_apartment_count(store: DocumentStore, floor_id: str) -> int:
    """Overwrite a floor's stored apartment_count with a fresh count."""
    count = await count_apartments(store, floor_id)
    await store.update(FLOORS, floor_id, {"apartment_count": count})
    return count


class FloorRepository(DocumentRepository[Floor]):
    collection = FLOORS
    model = Floor
    server_fields = DocumentRepository.server_fields | {"apartment_count"}

    async def by_status(self, status: FloorStatus | str) -> list[Floor]:
        return await self.list(ListFilter(equals={"status": status}))

    async def by_number(self, number: int) -> Floor | None:
        floors = await self.list(ListFilter(equals={"number": number}, limit=1))
        return floors[0] if floors else None

    async def update_hotspots(
        self,
        floor_id: str,
        top_view: list[Hotspot] | None = None,
        angle_hotspots: dict[str, list[Hotspot]] | None = None,
    ) -> None:
        partial: dict[str, Any] = {}
        if top_view is not None:
            partial["top_view_hotspots"] = top_view
        if angle_hotspots is not None:
            partial["angle_hotspots"] = angle_hotspots
        await self.update(floor_id, partial)

    async def _check(self, tx: DocumentStore, entity: Floor, previous: Floor | None) -> None:
        if previous is not None and previous.number == entity.number:
            return
        same_number = await tx.query(FLOORS, [Predicate("number", Operator.EQ, entity.number)])
        if any(doc["id"] != entity.id for doc in same_number):
            raise ValidationError(f"Floor number {entity.number} is already in use")

    async def _before_delete(self, tx: DocumentStore, entity: Floor) -> None:
        dependents = await tx.query(APARTMENTS, [Predicate("floor_id", Operator.EQ, entity.id)], limit=1)
        if dependents:
            raise ConflictError(
                f"Floor {entity.id} still has apartments; delete or move them before deleting the floor"
            )


class ApartmentRepository(DocumentRepository[Apartment]):
    collection = APARTMENTS
    model = Apartment

    async def by_floor(self, floor_id: str) -> list[Apartment]:
        return await self.list(ListFilter(equals={"floor_id": floor_id}))

    async def by_status(self, status: ApartmentStatus | str) -> list[Apartment]:
        return await self.list(ListFilter(equals={"status": status}))

    async def by_type(self, apartment_type: str) -> list[Apartment]:
        return await self.list(ListFilter(equals={"type": apartment_type}))

    async def by_price_range(self, min_price: float | None, max_price: float | None) -> list[Apartment]:
        return await self.list(ListFilter(ranges={"price": (min_price, max_price)}, order_by="price"))

    async def _check(self, tx: DocumentStore, entity: Apartment, previous: Apartment | None) -> None:
        moved = previous is None or previous.floor_id != entity.floor_id
        if moved and await tx.get(FLOORS, entity.floor_id) is None:
            raise ValidationError(f"Floor {entity.floor_id} does not exist")

        if moved or previous.lot_number != entity.lot_number:
            same_lot = await tx.query(
                APARTMENTS,
                [
                    Predicate("floor_id", Operator.EQ, entity.floor_id),
                    Predicate("lot_number", Operator.EQ, entity.lot_number),
                ],
            )
            if any(doc["id"] != entity.id for doc in same_lot):
                raise ValidationError(f"Lot {entity.lot_number} already exists on floor {entity.floor_id}")

    async def _after_write(self, tx: DocumentStore, entity: Apartment, previous: Apartment | None) -> None:
        if previous is None or previous.floor_id != entity.floor_id:
            await refresh_apartment_count(tx, entity.floor_id)
        if previous is not None and previous.floor_id != entity.floor_id:
            await refresh_apartment_count(tx, previous.floor_id)

    async def _before_delete(self, tx: DocumentStore, entity: Apartment) -> None:
        pictures = await tx.query(PICTURES, [Predicate("apartment_id", Operator.EQ, entity.id)])
        for picture in pictures:
            await tx.delete(PICTURES, picture["id"])
        if pictures:
            logger.info("Removed %d pictures of apartment %s", len(pictures), entity.id)

    async def _after_delete(self, tx: DocumentStore, entity: Apartment) -> None:
        await refresh_apartment_count(tx, entity.floor_id)


class PictureRepository(DocumentRepository[Picture]):
    collection = PICTURES
    model = Picture
    server_fields = frozenset({"id", "created_at"})
    has_updated_at = False

    async def for_apartment(self, apartment_id: str) -> list[Picture]:
        return await self.list(ListFilter(equals={"apartment_id": apartment_id}))

    async def next_order(self, apartment_id: str, store: DocumentStore | None = None) -> int:
        """One past the highest order used by the apartment's pictures, 0 when it has none."""
        store = store or self._store
        top = await store.query(
            PICTURES,
            [Predicate("apartment_id", Operator.EQ, apartment_id)],
            order_by="order",
            descending=True,
            limit=1,
        )
        return top[0]["order"] + 1 if top else 0

    async def reorder(self, apartment_id: str, picture_ids: list[str]) -> None:
        """Give the listed pictures orders 0..n-1 in the given sequence."""
        if len(set(picture_ids)) != len(picture_ids):
            raise ValidationError("Picture ids must not repeat")
        async with self._store.transaction() as tx:
            docs = await tx.query(PICTURES, [Predicate("apartment_id", Operator.EQ, apartment_id)])
            known = {doc["id"] for doc in docs}
            unknown = [pid for pid in picture_ids if pid not in known]
            if unknown:
                raise ValidationError(
                    f"Pictures {', '.join(unknown)} do not belong to apartment {apartment_id}"
                )
            for position, picture_id in enumerate(picture_ids):
                await tx.update(PICTURES, picture_id, {"order": position})
        logger.info("Reordered %d pictures of apartment %s", len(picture_ids), apartment_id)

    async def delete_for_apartment(self, apartment_id: str) -> int:
        async with self._store.transaction() as tx:
            docs = await tx.query(PICTURES, [Predicate("apartment_id", Operator.EQ, apartment_id)])
            for doc in docs:
                await tx.delete(PICTURES, doc["id"])
        logger.info("Deleted %d pictures of apartment %s", len(docs), apartment_id)
        return len(docs)

    async def _apply_defaults(self, tx: DocumentStore, fields: dict[str, Any]) -> None:
        if fields.get("order") is None and fields.get("apartment_id"):
            fields["order"] = await self.next_order(fields["apartment_id"], tx)

    async def _check(self, tx: DocumentStore, entity: Picture, previous: Picture | None) -> None:
        if previous is None or previous.apartment_id != entity.apartment_id:
            if await tx.get(APARTMENTS, entity.apartment_id) is None:
                raise ValidationError(f"Apartment {entity.apartment_id} does not exist")


class BuyerRepository(DocumentRepository[Buyer]):
    collection = BUYERS
    model = Buyer

    async def by_status(self, status: BuyerStatus | str) -> list[Buyer]:
        return await self.list(ListFilter(equals={"status": status}))

    async def interested_in(self, apartment_id: str) -> list[Buyer]:
        return await self.list(ListFilter(contains={"interested_apartment_ids": apartment_id}))

    async def created_between(self, start, end) -> list[Buyer]:
        return await self.list(ListFilter(ranges={"created_at": (start, end)}, order_by="created_at"))

    def _normalize(self, fields: dict[str, Any]) -> None:
        status = fields.get("status")
        if isinstance(status, str) and status.upper() in RETIRED_BUYER_STATUSES:
            allowed = ", ".join(s.value for s in BuyerStatus)
            raise ValidationError(f"Buyer status '{status}' is no longer used. Must be one of: {allowed}")


class CatalogRepository:
    """The four entity repositories over one document store."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.floors = FloorRepository(store)
        self.apartments = ApartmentRepository(store)
        self.pictures = PictureRepository(store)
        self.buyers = BuyerRepository(store)
