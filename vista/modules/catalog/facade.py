"""
Catalog Facade: answers cross-entity questions by composing the catalog and asset
repositories, so callers never need to know the storage layout.

Errors from the repositories propagate unchanged. The only soft-fail here is
floor_panorama_urls, which logs and returns an empty list.
"""

import logging

from pydantic import BaseModel

from vista.errors import CatalogError, NotFoundError
from vista.models.apartment import Apartment, ApartmentStatus
from vista.models.asset import AssetDescriptor
from vista.models.buyer import Buyer
from vista.models.floor import Floor, FloorStatus
from vista.models.picture import Picture, PictureType
from vista.modules.assets.paths import AssetKind, apartment_images_prefix
from vista.modules.assets.repository import AssetRepository
from vista.modules.catalog.filters import ListFilter, refine
from vista.modules.catalog.repository import FLOORS, CatalogRepository, count_apartments, refresh_apartment_count

logger = logging.getLogger(__name__)

UNKNOWN_APARTMENT = "Unknown apartment"


class ApartmentWithPictures(BaseModel):
    apartment: Apartment
    picture_urls: list[str]


class ApartmentRef(BaseModel):
    """An apartment id as shown next to a buyer; dangling ids keep found=False."""
    id: str
    label: str
    found: bool
    floor_id: str | None = None
    status: ApartmentStatus | None = None


def presentation_order(pictures: list[Picture]) -> list[Picture]:
    """By order, then creation time; the id only makes identical timestamps deterministic."""
    return sorted(pictures, key=lambda p: (p.order, p.created_at, p.id))


class CatalogFacade:
    def __init__(self, catalog: CatalogRepository, assets: AssetRepository):
        self.catalog = catalog
        self.assets = assets

    # --- Relationship queries ---

    async def apartments_on_floor(self, floor_id: str) -> list[Apartment]:
        return await self.catalog.apartments.by_floor(floor_id)

    async def buyers_interested_in(self, apartment_id: str) -> list[Buyer]:
        return await self.catalog.buyers.interested_in(apartment_id)

    async def pictures_for_apartment(self, apartment_id: str) -> list[Picture]:
        return presentation_order(await self.catalog.pictures.for_apartment(apartment_id))

    async def floor_panorama_urls(self, floor_id: str) -> list[str]:
        try:
            images = await self.assets.floor_image_details(floor_id)
        except CatalogError as e:
            logger.warning("Could not list panoramas of floor %s: %s", floor_id, e)
            return []
        for failed in (image for image in images if not image.ok):
            logger.warning("Skipping panorama %s of floor %s: %s", failed.path, floor_id, failed.error)
        return [image.url for image in images if image.ok]

    # --- Floors ---

    async def get_floor(self, floor_id: str) -> Floor:
        """The floor with its apartment count recomputed from the apartments themselves."""
        floor = await self.catalog.floors.get_by_id(floor_id)
        live = await count_apartments(self.catalog.store, floor_id)
        if live != floor.apartment_count:
            logger.warning(
                "Floor %s stored apartment_count %d, actual %d", floor_id, floor.apartment_count, live,
            )
        return floor.model_copy(update={"apartment_count": live})

    async def floors(self, status: FloorStatus | str | None = None) -> list[Floor]:
        """All floors by number, each with a live apartment count."""
        filter = ListFilter(order_by="number")
        if status is not None:
            filter.equals["status"] = status
        floors = await self.catalog.floors.list(filter)
        return [
            floor.model_copy(update={"apartment_count": await count_apartments(self.catalog.store, floor.id)})
            for floor in floors
        ]

    async def sync_apartment_count(self, floor_id: str) -> int:
        async with self.catalog.store.transaction() as tx:
            if await tx.get(FLOORS, floor_id) is None:
                raise NotFoundError(f"Floor {floor_id} not found")
            count = await refresh_apartment_count(tx, floor_id)
        logger.info("Floor %s apartment_count set to %d", floor_id, count)
        return count

    async def set_floor_model(
        self, floor_id: str, file_name: str, data: bytes, content_type: str | None = None,
    ) -> Floor:
        await self.catalog.floors.get_by_id(floor_id)
        # one model per floor; a new upload replaces the previous one
        descriptor = await self.assets.upload(
            AssetKind.MODEL, floor_id, file_name, data, content_type=content_type, overwrite=True,
        )
        await self.catalog.floors.update(floor_id, {"model_url": descriptor.url})
        return await self.get_floor(floor_id)

    # --- Apartments ---

    async def apartments_with_pictures(self, floor_id: str) -> list[ApartmentWithPictures]:
        result = []
        for apartment in await self.apartments_on_floor(floor_id):
            pictures = await self.pictures_for_apartment(apartment.id)
            result.append(ApartmentWithPictures(apartment=apartment, picture_urls=[p.url for p in pictures]))
        return result

    async def search_apartments(
        self,
        min_price: float | None = None,
        max_price: float | None = None,
        min_area: float | None = None,
        max_area: float | None = None,
        status: ApartmentStatus | str | None = None,
    ) -> list[Apartment]:
        """Price is filtered by the store; area is refined here, as the store takes one range per query."""
        filter = ListFilter(order_by="price")
        if min_price is not None or max_price is not None:
            filter.ranges["price"] = (min_price, max_price)
        if status is not None:
            filter.equals["status"] = status
        apartments = await self.catalog.apartments.list(filter)
        return refine(
            apartments,
            lambda a: (min_area is None or a.area >= min_area) and (max_area is None or a.area <= max_area),
        )

    async def main_picture(self, apartment_id: str) -> Picture | None:
        mains = [p for p in await self.pictures_for_apartment(apartment_id) if p.type is PictureType.MAIN]
        if len(mains) > 1:
            logger.warning("Apartment %s has %d MAIN pictures, using %s", apartment_id, len(mains), mains[0].id)
        return mains[0] if mains else None

    async def add_apartment_picture(
        self,
        apartment_id: str,
        file_name: str,
        data: bytes,
        picture_type: PictureType = PictureType.INTERIOR,
        content_type: str | None = None,
        order: int | None = None,
    ) -> Picture:
        """Upload an image under apartment-images/{id}/ and register it as a Picture."""
        await self.catalog.apartments.get_by_id(apartment_id)
        descriptor = await self.assets.upload(
            AssetKind.APARTMENT_IMAGE, apartment_id, file_name, data, content_type=content_type,
        )
        try:
            picture_id = await self.catalog.pictures.create(
                {"apartment_id": apartment_id, "url": descriptor.url, "type": picture_type, "order": order}
            )
        except CatalogError:
            logger.error("Picture record for %s failed, removing uploaded %s", apartment_id, descriptor.path)
            try:
                await self.assets.delete(descriptor.path)
            except CatalogError as cleanup_error:
                logger.warning("Could not remove %s: %s", descriptor.path, cleanup_error)
            raise
        return await self.catalog.pictures.get_by_id(picture_id)

    async def delete_apartment(self, apartment_id: str, purge_assets: bool = False) -> list[AssetDescriptor]:
        """Delete an apartment and its pictures.

        With ``purge_assets`` its uploaded images are deleted too. Returns the images
        that could not be deleted, each with ``error`` set; an empty list means a clean purge.
        """
        await self.catalog.apartments.delete(apartment_id)
        if not purge_assets:
            return []

        failures = []
        async for image in self.assets.list(apartment_images_prefix(apartment_id), recurse=False):
            try:
                await self.assets.delete(image.path)
            except CatalogError as e:
                logger.warning("Could not purge %s: %s", image.path, e)
                failures.append(image.model_copy(update={"error": e.message}))
        return failures

    # --- Buyers ---

    async def interested_apartments(self, buyer_id: str) -> list[ApartmentRef]:
        buyer = await self.catalog.buyers.get_by_id(buyer_id)
        refs = []
        for apartment_id in buyer.interested_apartment_ids:
            apartment = await self.catalog.apartments.find(apartment_id)
            if apartment is None:
                refs.append(ApartmentRef(id=apartment_id, label=UNKNOWN_APARTMENT, found=False))
                continue
            refs.append(
                ApartmentRef(
                    id=apartment.id,
                    label=f"Lot {apartment.lot_number}",
                    found=True,
                    floor_id=apartment.floor_id,
                    status=apartment.status,
                )
            )
        return refs
