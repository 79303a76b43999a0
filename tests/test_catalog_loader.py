from vista.models.apartment import ApartmentStatus
from vista.models.floor import FloorStatus
from vista.modules.catalog_loader import build_summary, load_catalog, parse_catalog_csv

CSV = """\
## Vista catalog template
floor_number,floor_name,floor_status,lot_number,type,area,price,status,description
1,Ground,activo,a101,2BR,"75,5",150000,disponible,Corner unit
1,Ground,activo,A102,studio,40,90000,reservada,
2,First,en construccion,B201,3BR,96,189000,vendido,
2,First,en construccion,B202,3BR,0,189000,available,
3,Second,,,,,,,
"""


def test_parse_catalog_csv():
    parsed = parse_catalog_csv(CSV.encode("utf-8"))

    assert [f["number"] for f in parsed["floors"]] == [1, 2, 3]
    assert parsed["floors"][1]["status"] is FloorStatus.UNDER_CONSTRUCTION
    assert parsed["floors"][2]["name"] == "Second"

    lots = {a["lot_number"]: a for a in parsed["apartments"]}
    assert sorted(lots) == ["A101", "A102", "B201"]
    assert lots["A101"]["area"] == 75.5
    assert lots["A101"]["status"] is ApartmentStatus.AVAILABLE
    assert lots["A102"]["status"] is ApartmentStatus.RESERVED
    assert lots["B201"]["status"] is ApartmentStatus.SOLD

    assert len(parsed["errors"]) == 1
    assert "B202" in parsed["errors"][0]


def test_parse_empty_csv():
    parsed = parse_catalog_csv(b"## only a comment\n")
    assert parsed["floors"] == []
    assert parsed["errors"]


def test_parse_flags_repeated_lots_and_unknown_status():
    csv_bytes = (
        "floor_number,floor_name,lot_number,area,price,status\n"
        "1,Ground,A1,50,100,disponible\n"
        "1,Ground,a1,50,100,disponible\n"
        "1,Ground,A2,50,100,alquilada\n"
    ).encode("utf-8")

    parsed = parse_catalog_csv(csv_bytes)

    assert [a["lot_number"] for a in parsed["apartments"]] == ["A1", "A2"]
    assert parsed["apartments"][1]["status"] is ApartmentStatus.AVAILABLE
    assert len(parsed["errors"]) == 1
    assert "repeated" in parsed["errors"][0]
    assert parsed["warnings"] == ["Row 4: unknown status 'alquilada' for lot 'A2', using AVAILABLE"]


async def test_load_catalog(catalog):
    parsed = parse_catalog_csv(CSV.encode("utf-8"))

    result = await load_catalog(catalog, parsed)

    assert result["floors_created"] == 3
    assert result["apartments_created"] == 3
    ground = await catalog.floors.by_number(1)
    assert ground.apartment_count == 2
    assert sorted(a.lot_number for a in await catalog.apartments.by_floor(ground.id)) == ["A101", "A102"]


async def test_load_catalog_reuses_floors_and_reports_duplicates(catalog):
    parsed = parse_catalog_csv(CSV.encode("utf-8"))
    await load_catalog(catalog, parsed)

    again = await load_catalog(catalog, parsed)

    assert again["floors_created"] == 0
    assert again["floors_reused"] == 3
    assert again["apartments_created"] == 0
    assert any("A101" in e for e in again["errors"])


def test_build_summary():
    summary = build_summary(parse_catalog_csv(CSV.encode("utf-8")))

    assert "Floors: 3" in summary
    assert "Apartments: 3" in summary
    assert "Price range: 90,000 to 189,000" in summary
    assert "Errors (rows skipped):" in summary
    assert "Warnings:" not in summary


def test_parse_rejects_non_utf8_csv():
    parsed = parse_catalog_csv(b"floor_number,lot_number\n1,\xff\xfe\n")

    assert parsed == {"floors": [], "apartments": [], "errors": ["The CSV is not valid UTF-8"], "warnings": []}


async def test_unknown_status_warning_does_not_block_load(catalog):
    parsed = parse_catalog_csv(b"floor_number,floor_name,lot_number,area,price,status\n1,Ground,A1,50,100,libre\n")

    result = await load_catalog(catalog, parsed)

    assert result["errors"] == []
    assert result["apartments_created"] == 1
    assert len(result["warnings"]) == 1
    [apartment] = await catalog.apartments.by_status(ApartmentStatus.AVAILABLE)
    assert apartment.lot_number == "A1"
