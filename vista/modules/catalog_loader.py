"""
Catalog Loader: parses CSV files into floors and apartments and loads them
through the catalog repository.

One row per apartment:
    floor_number,floor_name,floor_status,lot_number,type,area,price,status,description
Lines starting with ## are comments. Status columns accept English or Spanish values.
"""

import csv
import io
import logging

from vista.errors import ValidationError
from vista.models.apartment import ApartmentStatus
from vista.models.floor import FloorStatus
from vista.modules.catalog.repository import CatalogRepository

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "disponible": ApartmentStatus.AVAILABLE,
    "reservada": ApartmentStatus.RESERVED,
    "reservado": ApartmentStatus.RESERVED,
    "vendida": ApartmentStatus.SOLD,
    "vendido": ApartmentStatus.SOLD,
    "en construccion": ApartmentStatus.UNDER_CONSTRUCTION,
    "en construcción": ApartmentStatus.UNDER_CONSTRUCTION,
    "available": ApartmentStatus.AVAILABLE,
    "reserved": ApartmentStatus.RESERVED,
    "sold": ApartmentStatus.SOLD,
    "under_construction": ApartmentStatus.UNDER_CONSTRUCTION,
    "under construction": ApartmentStatus.UNDER_CONSTRUCTION,
}

FLOOR_STATUS_MAP = {
    "activo": FloorStatus.ACTIVE,
    "active": FloorStatus.ACTIVE,
    "terminado": FloorStatus.ACTIVE,
    "en_construccion": FloorStatus.UNDER_CONSTRUCTION,
    "en construccion": FloorStatus.UNDER_CONSTRUCTION,
    "en construcción": FloorStatus.UNDER_CONSTRUCTION,
    "en pozo": FloorStatus.UNDER_CONSTRUCTION,
    "under_construction": FloorStatus.UNDER_CONSTRUCTION,
    "under construction": FloorStatus.UNDER_CONSTRUCTION,
}


def parse_catalog_csv(csv_bytes: bytes) -> dict:
    """Parse a catalog CSV file and return structured data.

    Returns: {
        "floors": [ {"number", "name", "status"}, ... ] in first-seen order,
        "apartments": [ {"floor_number", "lot_number", "type", "area", "price", "status", "description"}, ... ],
        "errors": [ ... row-level problems; those rows are skipped ... ],
        "warnings": [ ... values that were replaced by a default; those rows are kept ... ],
    }
    """
    try:
        text = csv_bytes.decode("utf-8-sig").strip()
    except UnicodeDecodeError as e:
        logger.warning("Rejected catalog CSV that is not UTF-8: %s", e)
        return {"floors": [], "apartments": [], "errors": ["The CSV is not valid UTF-8"], "warnings": []}

    lines = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("##"):
            lines.append(stripped)

    if len(lines) < 2:
        return {"floors": [], "apartments": [], "errors": ["The CSV is empty or has no data rows"], "warnings": []}

    rows = list(csv.DictReader(io.StringIO("\n".join(lines))))

    errors = []
    warnings = []
    floors: dict[int, dict] = {}
    apartments = []
    seen_lots: set[tuple[int, str]] = set()

    for i, row in enumerate(rows):
        line_no = i + 2
        floor_number = _parse_int(row.get("floor_number"))
        if not floor_number or floor_number < 1:
            errors.append(f"Row {line_no}: missing or invalid floor_number")
            continue

        if floor_number not in floors:
            raw_floor_status = (row.get("floor_status") or "").strip().lower()
            floors[floor_number] = {
                "number": floor_number,
                "name": (row.get("floor_name") or "").strip() or f"Floor {floor_number}",
                "status": FLOOR_STATUS_MAP.get(raw_floor_status, FloorStatus.ACTIVE),
            }

        lot = (row.get("lot_number") or "").strip().upper()
        if not lot:
            # a floor-only row
            continue
        if (floor_number, lot) in seen_lots:
            errors.append(f"Row {line_no}: lot '{lot}' is repeated on floor {floor_number}")
            continue

        area = _parse_decimal(row.get("area"))
        price = _parse_decimal(row.get("price"))
        if not area or area <= 0:
            errors.append(f"Row {line_no}: lot '{lot}' has no valid area")
            continue
        if price is None or price < 0:
            errors.append(f"Row {line_no}: lot '{lot}' has no valid price")
            continue

        raw_status = (row.get("status") or "available").strip().lower()
        status = STATUS_MAP.get(raw_status)
        if status is None:
            warnings.append(f"Row {line_no}: unknown status '{raw_status}' for lot '{lot}', using AVAILABLE")
            status = ApartmentStatus.AVAILABLE

        seen_lots.add((floor_number, lot))
        apartments.append({
            "floor_number": floor_number,
            "lot_number": lot,
            "type": (row.get("type") or "").strip(),
            "area": area,
            "price": price,
            "status": status,
            "description": (row.get("description") or "").strip(),
        })

    if not floors:
        errors.append("No valid floors found in the CSV")

    return {"floors": list(floors.values()), "apartments": apartments, "errors": errors, "warnings": warnings}


async def load_catalog(catalog: CatalogRepository, parsed: dict) -> dict:
    """Create the parsed floors (reusing existing ones by number) and their apartments.

    Rows the repository rejects are reported and skipped; store failures propagate.
    Returns: {"floors_created": int, "floors_reused": int, "apartments_created": int, "errors": [...], "warnings": [...]}
    """
    floor_ids: dict[int, str] = {}
    floors_created = 0
    floors_reused = 0
    errors = list(parsed["errors"])

    for floor in parsed["floors"]:
        existing = await catalog.floors.by_number(floor["number"])
        if existing:
            floor_ids[floor["number"]] = existing.id
            floors_reused += 1
            continue
        floor_ids[floor["number"]] = await catalog.floors.create(floor)
        floors_created += 1

    apartments_created = 0
    for apartment in parsed["apartments"]:
        fields = {k: v for k, v in apartment.items() if k != "floor_number"}
        fields["floor_id"] = floor_ids[apartment["floor_number"]]
        try:
            await catalog.apartments.create(fields)
        except ValidationError as e:
            errors.append(f"Lot '{apartment['lot_number']}' on floor {apartment['floor_number']}: {e.message}")
            continue
        apartments_created += 1

    logger.info(
        "Catalog loaded: %d floors created, %d reused, %d apartments created, %d problems",
        floors_created, floors_reused, apartments_created, len(errors),
    )
    return {
        "floors_created": floors_created,
        "floors_reused": floors_reused,
        "apartments_created": apartments_created,
        "errors": errors,
        "warnings": list(parsed.get("warnings", [])),
    }


def build_summary(parsed: dict) -> str:
    """Build a human-readable summary for confirmation."""
    floors = parsed["floors"]
    apartments = parsed["apartments"]

    lines = ["Catalog summary", ""]
    lines.append(f"Floors: {len(floors)}")
    for floor in floors:
        on_floor = [a for a in apartments if a["floor_number"] == floor["number"]]
        lines.append(f"  {floor['number']}. {floor['name']} ({floor['status'].value}): {len(on_floor)} apartments")

    lines.append(f"\nApartments: {len(apartments)}")
    if apartments:
        prices = [a["price"] for a in apartments]
        lines.append(f"Price range: {min(prices):,.0f} to {max(prices):,.0f}")

        counts = {status: 0 for status in ApartmentStatus}
        for a in apartments:
            counts[a["status"]] += 1
        lines.append("Status: " + ", ".join(f"{n} {s.value.lower()}" for s, n in counts.items() if n))

        lines.append("\nDetail:")
        for a in apartments:
            parts = [f"{a['lot_number']}:", f"F{a['floor_number']},"]
            if a["type"]:
                parts.append(f"{a['type']},")
            parts.append(f"{a['area']}m²,")
            parts.append(f"{a['price']:,.0f}")
            lines.append("  " + " ".join(parts))

    if parsed["errors"]:
        lines.append("\nErrors (rows skipped):")
        for e in parsed["errors"]:
            lines.append(f"  - {e}")
    if parsed.get("warnings"):
        lines.append("\nWarnings:")
        for w in parsed["warnings"]:
            lines.append(f"  - {w}")

    return "\n".join(lines)


# ---------- Helpers ----------

def _parse_int(val) -> int | None:
    if not val:
        return None
    try:
        return int(str(val).strip().replace(".", "").replace(",", ""))
    except (ValueError, TypeError):
        return None


def _parse_decimal(val) -> float | None:
    if val is None or not str(val).strip():
        return None
    try:
        return float(str(val).strip().replace(",", "."))
    except (ValueError, TypeError):
        return None
