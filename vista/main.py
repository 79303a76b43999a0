import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from vista.config import Settings, get_settings, reload_settings

reload_settings()
from vista.admin.api import assets_router, catalog_router
from vista.errors import CatalogError, ConflictError, NotFoundError, StoreError, ValidationError
from vista.modules.assets.repository import AssetRepository
from vista.modules.catalog.facade import CatalogFacade
from vista.modules.catalog.repository import CatalogRepository
from vista.stores.memory import MemoryBlobStore, MemoryDocumentStore
from vista.stores.postgres import PostgresDocumentStore, create_pool
from vista.stores.s3 import S3BlobStore, create_s3_client

_ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StoreError, 502),
)


def build_blob_store(settings: Settings):
    if settings.asset_backend == "memory":
        return MemoryBlobStore(settings.memory_bucket_name)
    return S3BlobStore(
        create_s3_client(settings),
        settings.s3_bucket_name,
        public_url=settings.s3_public_url,
        url_expiry=settings.signed_url_expiry_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    pool = None
    if settings.catalog_backend == "memory":
        documents = MemoryDocumentStore()
    else:
        pool = await create_pool(settings.database_url)
        documents = PostgresDocumentStore(pool, settings.documents_table)
        await documents.ensure_schema()

    app.state.facade = CatalogFacade(CatalogRepository(documents), AssetRepository(build_blob_store(settings)))
    logger.info(
        "Catalog ready (documents: %s, assets: %s)", settings.catalog_backend, settings.asset_backend,
    )
    yield
    if pool is not None:
        await pool.close()


settings = get_settings()

app = FastAPI(
    title="Vista",
    description="Real-estate sales catalog: floors, apartments, pictures, buyers and 3D assets",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(catalog_router, prefix="/catalog", tags=["catalog"])
app.include_router(assets_router, prefix="/assets", tags=["assets"])


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": exc.message})


@app.get("/health")
async def health():
    return {"status": "ok", "environment": settings.environment}
