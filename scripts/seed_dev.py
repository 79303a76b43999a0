"""
Seed script: inserts demo floors, apartments and a buyer into the document store.
Run: python -m scripts.seed_dev
"""

import asyncio
import os
import sys

import asyncpg
from dotenv import load_dotenv

from vista.modules.catalog.repository import CatalogRepository
from vista.stores.postgres import PostgresDocumentStore

load_dotenv()

FLOORS = [
    {"number": 1, "name": "Ground Floor", "status": "ACTIVE"},
    {"number": 2, "name": "First Floor", "status": "ACTIVE"},
    {"number": 3, "name": "Second Floor", "status": "ACTIVE"},
    {"number": 4, "name": "Third Floor", "status": "UNDER_CONSTRUCTION"},
]

APARTMENTS = [
    {"floor": 1, "lot_number": "A101", "type": "1BR", "area": 48.0, "price": 92000, "status": "AVAILABLE"},
    {"floor": 1, "lot_number": "A102", "type": "2BR", "area": 75.5, "price": 150000, "status": "AVAILABLE"},
    {"floor": 2, "lot_number": "B201", "type": "2BR", "area": 78.0, "price": 158000, "status": "RESERVED"},
    {"floor": 2, "lot_number": "B202", "type": "3BR", "area": 96.0, "price": 189000, "status": "AVAILABLE"},
    {"floor": 3, "lot_number": "C301", "type": "3BR", "area": 101.0, "price": 205000, "status": "SOLD"},
    {"floor": 4, "lot_number": "PH401", "type": "penthouse", "area": 140.0, "price": 320000,
     "status": "UNDER_CONSTRUCTION"},
]

BUYER = {
    "name": "Demo Buyer",
    "contact": {"email": "buyer@example.com", "phone": "+15550000000"},
    "status": "INTERESTED",
    "budget": 200000,
}


async def seed():
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL not set in .env")
        sys.exit(1)

    conn = await asyncpg.connect(database_url)

    try:
        store = PostgresDocumentStore(conn, os.getenv("DOCUMENTS_TABLE", "catalog_documents"))
        await store.ensure_schema()
        catalog = CatalogRepository(store)

        if await catalog.floors.by_number(1):
            print("Floor 1 already exists. Skipping seed.")
            return

        floor_ids = {}
        for floor in FLOORS:
            floor_ids[floor["number"]] = await catalog.floors.create(floor)
            print(f"Created floor {floor['number']}: {floor['name']} (id={floor_ids[floor['number']]})")

        apartment_ids = []
        for apt in APARTMENTS:
            fields = {k: v for k, v in apt.items() if k != "floor"}
            fields["floor_id"] = floor_ids[apt["floor"]]
            apartment_ids.append(await catalog.apartments.create(fields))
        print(f"Created {len(apartment_ids)} apartments")

        buyer_id = await catalog.buyers.create({**BUYER, "interested_apartment_ids": apartment_ids[:2]})
        print(f"Created buyer: {BUYER['name']} (id={buyer_id})")

        print("\nSeed complete!")

    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(seed())
