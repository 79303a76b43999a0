import boto3
import pytest
from botocore.stub import Stubber

from vista.errors import NotFoundError, StoreError
from vista.stores.base import Operator, Predicate
from vista.stores.memory import MemoryDocumentStore
from vista.stores.postgres import PostgresDocumentStore, build_query
from vista.stores.s3 import S3BlobStore

BUCKET = "vista-test"


@pytest.fixture
def s3_client():
    return boto3.client("s3", region_name="us-east-1", aws_access_key_id="test", aws_secret_access_key="test")


# --- Postgres query building ---

def test_build_query_predicates_order_and_limit():
    sql, params = build_query(
        "catalog_documents",
        "buyers",
        [
            Predicate("status", Operator.EQ, "INTERESTED"),
            Predicate("interested_apartment_ids", Operator.ARRAY_CONTAINS, "A1"),
        ],
        order_by="created_at",
        descending=True,
        limit=5,
    )

    assert params == ["buyers", "status", '"INTERESTED"', "interested_apartment_ids", '"A1"', "created_at", 5]
    assert sql.startswith("SELECT data FROM catalog_documents WHERE collection = $1")
    assert "data -> $2::text = $3::jsonb" in sql
    assert "data -> $4::text @> jsonb_build_array($5::jsonb)" in sql
    assert sql.endswith("ORDER BY data -> $6::text DESC LIMIT $7")


def test_build_query_range():
    sql, params = build_query(
        "docs", "apartments",
        [Predicate("price", Operator.GTE, 100), Predicate("price", Operator.LTE, 200)],
    )

    assert "jsonb_typeof(data -> $2::text) = jsonb_typeof($3::jsonb) AND data -> $2::text >= $3::jsonb" in sql
    assert "jsonb_typeof(data -> $4::text) = jsonb_typeof($5::jsonb) AND data -> $4::text <= $5::jsonb" in sql
    assert params == ["apartments", "price", "100", "price", "200"]
    assert "ORDER BY" not in sql


def test_postgres_store_rejects_unsafe_table_name():
    with pytest.raises(ValueError):
        PostgresDocumentStore(object(), "docs; DROP TABLE x")


# --- Memory document store ---

async def test_memory_query_skips_missing_and_mismatched_fields():
    store = MemoryDocumentStore()
    await store.create("apartments", "a", {"id": "a", "price": 100})
    await store.create("apartments", "b", {"id": "b", "price": "n/a"})
    await store.create("apartments", "c", {"id": "c"})

    found = await store.query("apartments", [Predicate("price", Operator.GTE, 50)], order_by="price")

    assert [d["id"] for d in found] == ["a"]


async def test_memory_range_matches_within_one_json_type():
    store = MemoryDocumentStore()
    await store.create("apartments", "a", {"id": "a", "price": 100})
    await store.create("apartments", "b", {"id": "b", "price": True})
    await store.create("apartments", "c", {"id": "c", "price": 99.5})

    found = await store.query("apartments", [Predicate("price", Operator.LTE, 100)], order_by="price")

    assert [d["id"] for d in found] == ["c", "a"]


async def test_memory_create_rejects_duplicate_id():
    store = MemoryDocumentStore()
    await store.create("floors", "f", {"id": "f"})
    with pytest.raises(StoreError):
        await store.create("floors", "f", {"id": "f"})


async def test_memory_reads_are_copies():
    store = MemoryDocumentStore()
    await store.create("buyers", "b", {"id": "b", "interested_apartment_ids": ["A1"]})

    doc = await store.get("buyers", "b")
    doc["interested_apartment_ids"].append("A2")

    assert (await store.get("buyers", "b"))["interested_apartment_ids"] == ["A1"]


# --- S3 blob store ---

async def test_s3_put_and_public_url(s3_client):
    store = S3BlobStore(s3_client, BUCKET, public_url="https://cdn.example.com/")
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object", {},
            {"Bucket": BUCKET, "Key": "images/a.png", "Body": b"x", "ContentType": "image/png"},
        )
        stubber.add_response(
            "head_object", {"ContentLength": 1, "ContentType": "image/png"},
            {"Bucket": BUCKET, "Key": "images/a.png"},
        )

        await store.put("images/a.png", b"x", "image/png")
        assert await store.get_url("images/a.png") == "https://cdn.example.com/images/a.png"
        stubber.assert_no_pending_responses()


async def test_s3_presigned_url_without_public_url(s3_client):
    store = S3BlobStore(s3_client, BUCKET)
    with Stubber(s3_client) as stubber:
        stubber.add_response("head_object", {"ContentLength": 1}, {"Bucket": BUCKET, "Key": "models/a.glb"})

        url = await store.get_url("models/a.glb")

    assert "models/a.glb" in url
    assert "Expires" in url or "X-Amz-Expires" in url


async def test_s3_missing_object_is_not_found(s3_client):
    store = S3BlobStore(s3_client, BUCKET)
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        with pytest.raises(NotFoundError):
            await store.delete("images/missing.png")
        assert await store.exists("images/missing.png") is False


async def test_s3_other_errors_are_store_errors(s3_client):
    store = S3BlobStore(s3_client, BUCKET)
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(StoreError):
            await store.put("images/a.png", b"x")


async def test_s3_list_follows_continuation(s3_client):
    store = S3BlobStore(s3_client, BUCKET)
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [{"Key": "floors/F1/"}, {"Key": "floors/F1/001.jpg"}],
                "IsTruncated": True,
                "NextContinuationToken": "page-2",
            },
            {"Bucket": BUCKET, "Prefix": "floors/F1/", "Delimiter": "/"},
        )
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [{"Key": "floors/F1/002.jpg"}],
                "CommonPrefixes": [{"Prefix": "floors/F1/raw/"}],
                "IsTruncated": False,
            },
            {"Bucket": BUCKET, "Prefix": "floors/F1/", "Delimiter": "/", "ContinuationToken": "page-2"},
        )

        listing = await store.list("floors/F1")

    assert listing.items == ["floors/F1/001.jpg", "floors/F1/002.jpg"]
    assert listing.prefixes == ["floors/F1/raw/"]


async def test_s3_metadata(s3_client):
    store = S3BlobStore(s3_client, BUCKET)
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "head_object", {"ContentLength": 42, "ContentType": "model/gltf-binary"},
            {"Bucket": BUCKET, "Key": "floors/F1.glb"},
        )

        metadata = await store.get_metadata("floors/F1.glb")

    assert metadata.size == 42
    assert metadata.content_type == "model/gltf-binary"
