"""
Admin API: thin HTTP endpoints over the catalog facade.

catalog_router is mounted at /catalog (floors, apartments, pictures, buyers, CSV import),
assets_router at /assets (uploads, listings, floor panoramas, default assets).
Catalog errors are turned into HTTP responses by the handlers in vista.main.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import Response

from vista.errors import ValidationError
from vista.models.apartment import ApartmentStatus
from vista.models.asset import Found
from vista.models.buyer import BuyerStatus
from vista.models.floor import FloorStatus, Hotspot
from vista.models.picture import PictureType
from vista.modules.catalog.facade import CatalogFacade
from vista.modules.catalog.filters import ListFilter
from vista.modules.catalog_loader import build_summary, load_catalog, parse_catalog_csv

logger = logging.getLogger(__name__)

catalog_router = APIRouter()
assets_router = APIRouter()


def get_facade(request: Request) -> CatalogFacade:
    return request.app.state.facade


async def _json_object(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("The request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("The request body must be a JSON object")
    return body


# --- Floors ---

@catalog_router.get("/floors")
async def list_floors(status: Optional[FloorStatus] = None, facade: CatalogFacade = Depends(get_facade)):
    return await facade.floors(status)


@catalog_router.post("/floors", status_code=201)
async def create_floor(request: Request, facade: CatalogFacade = Depends(get_facade)):
    floor_id = await facade.catalog.floors.create(await _json_object(request))
    return await facade.get_floor(floor_id)


@catalog_router.get("/floors/{floor_id}")
async def get_floor(floor_id: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.get_floor(floor_id)


@catalog_router.patch("/floors/{floor_id}")
async def update_floor(floor_id: str, request: Request, facade: CatalogFacade = Depends(get_facade)):
    """Body: any subset of name, number, status, model_url, hotspots."""
    await facade.catalog.floors.update(floor_id, await _json_object(request))
    return await facade.get_floor(floor_id)


@catalog_router.delete("/floors/{floor_id}", status_code=204)
async def delete_floor(floor_id: str, facade: CatalogFacade = Depends(get_facade)):
    await facade.catalog.floors.delete(floor_id)


@catalog_router.put("/floors/{floor_id}/hotspots")
async def update_floor_hotspots(floor_id: str, request: Request, facade: CatalogFacade = Depends(get_facade)):
    """Body: {"top_view": [hotspot, ...], "angle_hotspots": {"1": [hotspot, ...]}}; either may be omitted."""
    body = await _json_object(request)
    try:
        top_view = [Hotspot.model_validate(h) for h in body["top_view"]] if "top_view" in body else None
        angles = (
            {k: [Hotspot.model_validate(h) for h in v] for k, v in body["angle_hotspots"].items()}
            if "angle_hotspots" in body else None
        )
    except (TypeError, AttributeError, ValueError) as e:
        raise ValidationError(f"Invalid hotspots: {e}") from e
    await facade.catalog.floors.update_hotspots(floor_id, top_view, angles)
    return await facade.get_floor(floor_id)


@catalog_router.post("/floors/{floor_id}/sync-count")
async def sync_floor_count(floor_id: str, facade: CatalogFacade = Depends(get_facade)):
    return {"floor_id": floor_id, "apartment_count": await facade.sync_apartment_count(floor_id)}


@catalog_router.get("/floors/{floor_id}/apartments")
async def floor_apartments(
    floor_id: str, with_pictures: bool = False, facade: CatalogFacade = Depends(get_facade),
):
    if with_pictures:
        return await facade.apartments_with_pictures(floor_id)
    return await facade.apartments_on_floor(floor_id)


@catalog_router.post("/floors/{floor_id}/model")
async def upload_floor_model(
    floor_id: str, file: UploadFile = File(...), facade: CatalogFacade = Depends(get_facade),
):
    content = await file.read()
    return await facade.set_floor_model(floor_id, file.filename or "model.glb", content, file.content_type)


@catalog_router.get("/floors/{floor_id}/panoramas")
async def floor_panoramas(floor_id: str, facade: CatalogFacade = Depends(get_facade)):
    return {"floor_id": floor_id, "urls": await facade.floor_panorama_urls(floor_id)}


# --- Apartments ---

@catalog_router.get("/apartments")
async def search_apartments(
    status: Optional[ApartmentStatus] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_area: Optional[float] = None,
    max_area: Optional[float] = None,
    facade: CatalogFacade = Depends(get_facade),
):
    return await facade.search_apartments(min_price, max_price, min_area, max_area, status)


@catalog_router.post("/apartments", status_code=201)
async def create_apartment(request: Request, facade: CatalogFacade = Depends(get_facade)):
    apartment_id = await facade.catalog.apartments.create(await _json_object(request))
    return await facade.catalog.apartments.get_by_id(apartment_id)


@catalog_router.get("/apartments/{apartment_id}")
async def get_apartment(apartment_id: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.catalog.apartments.get_by_id(apartment_id)


@catalog_router.patch("/apartments/{apartment_id}")
async def update_apartment(apartment_id: str, request: Request, facade: CatalogFacade = Depends(get_facade)):
    await facade.catalog.apartments.update(apartment_id, await _json_object(request))
    return await facade.catalog.apartments.get_by_id(apartment_id)


@catalog_router.delete("/apartments/{apartment_id}")
async def delete_apartment(
    apartment_id: str, purge_assets: bool = False, facade: CatalogFacade = Depends(get_facade),
):
    failures = await facade.delete_apartment(apartment_id, purge_assets=purge_assets)
    return {"deleted": apartment_id, "purge_failures": failures}


@catalog_router.get("/apartments/{apartment_id}/pictures")
async def apartment_pictures(apartment_id: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.pictures_for_apartment(apartment_id)


@catalog_router.post("/apartments/{apartment_id}/pictures", status_code=201)
async def add_apartment_picture(
    apartment_id: str,
    file: UploadFile = File(...),
    type: PictureType = Form(PictureType.INTERIOR),
    order: Optional[int] = Form(None),
    facade: CatalogFacade = Depends(get_facade),
):
    content = await file.read()
    return await facade.add_apartment_picture(
        apartment_id, file.filename or "picture.jpg", content,
        picture_type=type, content_type=file.content_type, order=order,
    )


@catalog_router.put("/apartments/{apartment_id}/pictures/order")
async def reorder_pictures(apartment_id: str, request: Request, facade: CatalogFacade = Depends(get_facade)):
    """Body: {"picture_ids": ["...", "..."]} in display order."""
    body = await _json_object(request)
    picture_ids = body.get("picture_ids")
    if not isinstance(picture_ids, list) or not all(isinstance(p, str) for p in picture_ids):
        raise ValidationError("picture_ids must be a list of picture ids")
    await facade.catalog.pictures.reorder(apartment_id, picture_ids)
    return await facade.pictures_for_apartment(apartment_id)


@catalog_router.get("/apartments/{apartment_id}/main-picture")
async def apartment_main_picture(apartment_id: str, facade: CatalogFacade = Depends(get_facade)):
    return {"apartment_id": apartment_id, "picture": await facade.main_picture(apartment_id)}


@catalog_router.get("/apartments/{apartment_id}/buyers")
async def apartment_buyers(apartment_id: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.buyers_interested_in(apartment_id)


@catalog_router.delete("/pictures/{picture_id}", status_code=204)
async def delete_picture(picture_id: str, facade: CatalogFacade = Depends(get_facade)):
    await facade.catalog.pictures.delete(picture_id)


# --- Buyers ---

@catalog_router.get("/buyers")
async def list_buyers(
    status: Optional[BuyerStatus] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    facade: CatalogFacade = Depends(get_facade),
):
    filter = ListFilter(order_by="created_at", descending=True)
    if status is not None:
        filter.equals["status"] = status
    if created_from is not None or created_to is not None:
        filter.ranges["created_at"] = (created_from, created_to)
    return await facade.catalog.buyers.list(filter)


@catalog_router.post("/buyers", status_code=201)
async def create_buyer(request: Request, facade: CatalogFacade = Depends(get_facade)):
    buyer_id = await facade.catalog.buyers.create(await _json_object(request))
    return await facade.catalog.buyers.get_by_id(buyer_id)


@catalog_router.get("/buyers/{buyer_id}")
async def get_buyer(buyer_id: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.catalog.buyers.get_by_id(buyer_id)


@catalog_router.patch("/buyers/{buyer_id}")
async def update_buyer(buyer_id: str, request: Request, facade: CatalogFacade = Depends(get_facade)):
    await facade.catalog.buyers.update(buyer_id, await _json_object(request))
    return await facade.catalog.buyers.get_by_id(buyer_id)


@catalog_router.delete("/buyers/{buyer_id}", status_code=204)
async def delete_buyer(buyer_id: str, facade: CatalogFacade = Depends(get_facade)):
    await facade.catalog.buyers.delete(buyer_id)


@catalog_router.get("/buyers/{buyer_id}/apartments")
async def buyer_apartments(buyer_id: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.interested_apartments(buyer_id)


# ---------- Catalog loading from CSV ----------

@catalog_router.post("/import")
async def import_catalog(
    csv_file: UploadFile = File(...),
    dry_run: bool = Form(False),
    facade: CatalogFacade = Depends(get_facade),
):
    """Parse a catalog CSV and create its floors and apartments.

    With dry_run, or when the CSV has rejected rows, nothing is written and the summary is
    returned. Warnings (values replaced by a default) do not block the load.
    """
    content = await csv_file.read()
    parsed = parse_catalog_csv(content)

    if not parsed["floors"]:
        return {"ok": False, "errors": parsed["errors"], "warnings": parsed["warnings"]}

    if dry_run or parsed["errors"]:
        return {
            "ok": not parsed["errors"],
            "summary": build_summary(parsed),
            "errors": parsed["errors"],
            "warnings": parsed["warnings"],
        }

    result = await load_catalog(facade.catalog, parsed)
    return {"ok": not result["errors"], **result}


# --- Assets ---

@assets_router.post("/upload", status_code=201)
async def upload_asset(
    file: UploadFile = File(...),
    kind: Optional[str] = Form(None),
    owner_id: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    overwrite: bool = Form(False),
    facade: CatalogFacade = Depends(get_facade),
):
    """Upload a file. Without kind, it is classified from its name."""
    content = await file.read()
    return await facade.assets.upload(
        kind, owner_id, file.filename or "upload.bin", content,
        content_type=file.content_type, category=category, overwrite=overwrite,
    )


@assets_router.get("/list")
async def list_assets(
    prefix: str = "", recurse: bool = True, sort: bool = False, facade: CatalogFacade = Depends(get_facade),
):
    return await facade.assets.list(prefix, recurse=recurse, sort=sort).collect()


@assets_router.get("/url")
async def asset_url(path: str, facade: CatalogFacade = Depends(get_facade)):
    return {"path": path, "url": await facade.assets.resolve_url(path)}


@assets_router.get("/download")
async def download_asset(path: str, facade: CatalogFacade = Depends(get_facade)):
    descriptor = await facade.assets.describe(path)
    content = await facade.assets.download(path)
    return Response(content=content, media_type=descriptor.content_type or "application/octet-stream")


@assets_router.delete("", status_code=204)
async def delete_asset(path: str, facade: CatalogFacade = Depends(get_facade)):
    await facade.assets.delete(path)


@assets_router.get("/models")
async def list_models(facade: CatalogFacade = Depends(get_facade)):
    return await facade.assets.list_models()


@assets_router.get("/environments")
async def list_environments(facade: CatalogFacade = Depends(get_facade)):
    return await facade.assets.list_environments()


@assets_router.get("/defaults")
async def default_assets(facade: CatalogFacade = Depends(get_facade)):
    """Default sky and floor texture; a missing one comes back with use_default=true."""
    results = {
        "environment": await facade.assets.default_environment(),
        "floor_texture": await facade.assets.default_floor_texture(),
    }
    return {
        name: (
            {"use_default": False, "url": r.url}
            if isinstance(r, Found)
            else {"use_default": True, "path": r.path, "reason": r.reason}
        )
        for name, r in results.items()
    }


@assets_router.get("/floors/{floor_id}/images")
async def floor_images(floor_id: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.assets.floor_image_details(floor_id)


@assets_router.post("/floors/{floor_id}/images", status_code=201)
async def upload_floor_image(
    floor_id: str,
    file: UploadFile = File(...),
    custom_name: Optional[str] = Form(None),
    facade: CatalogFacade = Depends(get_facade),
):
    content = await file.read()
    return await facade.assets.upload_floor_image(
        floor_id, file.filename or "image.jpg", content, custom_name=custom_name, content_type=file.content_type,
    )


@assets_router.get("/floors/{floor_id}/images/{file_name}")
async def floor_image_info(floor_id: str, file_name: str, facade: CatalogFacade = Depends(get_facade)):
    return await facade.assets.floor_image_info(floor_id, file_name)


@assets_router.delete("/floors/{floor_id}/images/{file_name}", status_code=204)
async def delete_floor_image(floor_id: str, file_name: str, facade: CatalogFacade = Depends(get_facade)):
    await facade.assets.delete_floor_image(floor_id, file_name)


@assets_router.post("/floors/{floor_id}/images/{file_name}/rename")
async def rename_floor_image(
    floor_id: str, file_name: str, request: Request, facade: CatalogFacade = Depends(get_facade),
):
    """Body: {"new_name": "..."}"""
    new_name = (await _json_object(request)).get("new_name")
    if not isinstance(new_name, str) or not new_name.strip():
        raise ValidationError("new_name is required")
    return await facade.assets.rename_floor_image(floor_id, file_name, new_name.strip())
