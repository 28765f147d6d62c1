"""
Bulk place import.

  - CSV (admin upload / scripts/import_places.py): one place per row,
    columns: name,address,city,county,state,zip,latitude,longitude,cuisines,
    tags,price_level,rating,website,phone,ig_url,is_featured,is_verified
  - Seed JSON (scripts/import_places.py --json): list of curated place objects

Rows are upserted one at a time; a bad row is recorded as "Row N: message"
(N = line number in the file, header is line 1) and the import continues.
"""
from __future__ import annotations

import csv
import io
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from munchies.core.contracts import ImportResult, PlaceUpsert
from munchies.services.places import PlacesService

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "name", "address", "city", "county", "state", "zip",
    "latitude", "longitude",
    "cuisines", "tags", "price_level", "rating",
    "website", "phone", "ig_url",
    "is_featured", "is_verified",
]


def _blank_to_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _split_list(v: Any) -> List[str]:
    return [s.strip() for s in str(v or "").split(",") if s.strip()]


def _truthy(v: Any) -> bool:
    return str(v or "").strip().lower() == "true"


def _validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


# ──────────────────────────────────────────────────────────────
# CSV
# ──────────────────────────────────────────────────────────────

def parse_csv_rows(text: str) -> List[Dict[str, str]]:
    """Header row + data rows; fully blank lines are skipped."""
    reader = csv.DictReader(io.StringIO(text))
    rows: List[Dict[str, str]] = []
    for row in reader:
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        rows.append({(k or "").strip(): (v or "") for k, v in row.items()})
    return rows


def row_to_place(row: Dict[str, str]) -> PlaceUpsert:
    try:
        lat = float(row.get("latitude") or "")
        lng = float(row.get("longitude") or "")
    except ValueError:
        raise ValueError("latitude/longitude must be numbers")

    price_raw = _blank_to_none(row.get("price_level"))
    rating_raw = _blank_to_none(row.get("rating"))

    try:
        price_level = int(price_raw) if price_raw else 2
        rating = float(rating_raw) if rating_raw else None
    except ValueError:
        raise ValueError("price_level/rating must be numbers")

    return PlaceUpsert(
        name=(row.get("name") or "").strip(),
        address=_blank_to_none(row.get("address")),
        city=_blank_to_none(row.get("city")),
        county=_blank_to_none(row.get("county")),
        state=_blank_to_none(row.get("state")) or "MI",
        zip=_blank_to_none(row.get("zip")),
        location={"type": "Point", "coordinates": [lng, lat]},
        cuisines=_split_list(row.get("cuisines")),
        tags=_split_list(row.get("tags")),
        price_level=price_level,
        rating=rating,
        website=_blank_to_none(row.get("website")),
        phone=_blank_to_none(row.get("phone")),
        ig_url=_blank_to_none(row.get("ig_url")),
        is_featured=_truthy(row.get("is_featured")),
        is_verified=_truthy(row.get("is_verified")),
        status="published",
    )


# ──────────────────────────────────────────────────────────────
# Seed JSON
# ──────────────────────────────────────────────────────────────

def seed_to_place(obj: Dict[str, Any]) -> PlaceUpsert:
    """
    Curated seed record → PlaceUpsert.
    city "Royal Oak, MI" → "Royal Oak"; geocode {lat,lng} → location;
    instagram → ig_url; status pending_verification → published.
    """
    location = obj.get("location")
    if not location:
        geo = obj.get("geocode") or {}
        if geo.get("lat") is None or geo.get("lng") is None:
            raise ValueError("missing geocode/location")
        location = {"type": "Point", "coordinates": [float(geo["lng"]), float(geo["lat"])]}

    city = _blank_to_none(obj.get("city"))
    if city:
        city = city.split(",")[0].strip() or None

    status = obj.get("status") or "published"
    if status == "pending_verification":
        status = "published"

    return PlaceUpsert(
        id=_blank_to_none(obj.get("id")),
        name=(obj.get("name") or "").strip(),
        slug=_blank_to_none(obj.get("slug")),
        address=_blank_to_none(obj.get("address")),
        city=city,
        county=_blank_to_none(obj.get("county")),
        state=obj.get("state") or "MI",
        zip=_blank_to_none(obj.get("zip")),
        location=location,
        cuisines=list(obj.get("cuisines") or []),
        tags=list(obj.get("tags") or []),
        price_level=obj.get("price_level") or 2,
        rating=obj.get("rating"),
        website=_blank_to_none(obj.get("website")),
        menu_url=_blank_to_none(obj.get("menu_url")),
        phone=_blank_to_none(obj.get("phone")),
        ig_url=_blank_to_none(obj.get("ig_url") or obj.get("instagram")),
        hours=obj.get("hours") or {},
        hero_image_url=_blank_to_none(obj.get("hero_image_url")),
        is_featured=bool(obj.get("is_featured")),
        is_verified=bool(obj.get("is_verified")),
        status=status,
    )


# ──────────────────────────────────────────────────────────────
# Runner
# ──────────────────────────────────────────────────────────────

def _import(service: PlacesService, items: Iterable[Any], convert, *, first_line: int) -> ImportResult:
    imported = 0
    errors: List[str] = []

    for i, item in enumerate(items):
        label = f"Row {i + first_line}"
        try:
            place = convert(item)
        except ValidationError as e:
            errors.append(f"{label}: {_validation_message(e)}")
            continue
        except (ValueError, TypeError) as e:
            errors.append(f"{label}: {e}")
            continue

        res = service.upsert_place(place)
        if res.is_ok:
            imported += 1
        else:
            errors.append(f"{label}: Failed to save place ({res.reason})")

    if errors:
        logger.warning("import finished imported=%d failed=%d", imported, len(errors))
    else:
        logger.info("import finished imported=%d", imported)

    return ImportResult(success=True, imported=imported, skipped=len(errors), errors=errors)


def import_csv(service: PlacesService, text: str) -> ImportResult:
    # Data starts on line 2 (line 1 is the header).
    return _import(service, parse_csv_rows(text), row_to_place, first_line=2)


def import_seed(service: PlacesService, records: List[Dict[str, Any]]) -> ImportResult:
    return _import(service, records, seed_to_place, first_line=1)
