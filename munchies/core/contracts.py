from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from munchies.core.text import generate_slug


# ──────────────────────────────────────────────────────────────
# Shared
# ──────────────────────────────────────────────────────────────

class BBox4(BaseModel):
    minLng: float
    minLat: float
    maxLng: float
    maxLat: float


class GeoPoint(BaseModel):
    """GeoJSON Point, WGS84. coordinates = [lng, lat]."""

    type: Literal["Point"] = "Point"
    coordinates: List[float]

    @model_validator(mode="before")
    @classmethod
    def _accept_lng_lat(cls, data: Any) -> Any:
        # Ingest payloads may send {"lng": .., "lat": ..} instead of coordinates.
        if isinstance(data, dict) and not data.get("coordinates"):
            if data.get("lng") is not None and data.get("lat") is not None:
                return {"type": "Point", "coordinates": [data["lng"], data["lat"]]}
        return data

    @field_validator("coordinates")
    @classmethod
    def _check_coordinates(cls, v: List[float]) -> List[float]:
        if len(v) != 2:
            raise ValueError("coordinates must be [lng, lat]")
        lng, lat = float(v[0]), float(v[1])
        if not (-180.0 <= lng <= 180.0) or not (-90.0 <= lat <= 90.0):
            raise ValueError(f"coordinates out of range: {v}")
        return [lng, lat]

    @property
    def lng(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]


# ──────────────────────────────────────────────────────────────
# Places
# ──────────────────────────────────────────────────────────────

PlaceStatus = Literal["draft", "published", "archived"]


class Place(BaseModel):
    id: str
    slug: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    state: str = "MI"
    zip: Optional[str] = None
    location: GeoPoint
    cuisines: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    price_level: int = 2
    rating: Optional[float] = None
    website: Optional[str] = None
    menu_url: Optional[str] = None
    phone: Optional[str] = None
    ig_url: Optional[str] = None
    hours: Dict[str, Any] = Field(default_factory=dict)  # day → {open, close} (sparse)
    hero_image_url: Optional[str] = None
    is_featured: bool = False
    is_verified: bool = False
    status: PlaceStatus = "published"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class NearbyPlace(Place):
    distance_miles: float


class PlaceUpsert(BaseModel):
    """Write-side payload. Keyed on id when present, otherwise on slug."""

    id: Optional[str] = None
    slug: Optional[str] = None
    name: str = Field(min_length=1)
    address: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    state: str = "MI"
    zip: Optional[str] = None
    location: GeoPoint
    cuisines: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    price_level: int = Field(default=2, ge=1, le=4)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    website: Optional[str] = None
    menu_url: Optional[str] = None
    phone: Optional[str] = None
    ig_url: Optional[str] = None
    hours: Dict[str, Any] = Field(default_factory=dict)
    hero_image_url: Optional[str] = None
    is_featured: bool = False
    is_verified: bool = False
    status: PlaceStatus = "published"

    @model_validator(mode="after")
    def _fill_slug(self) -> "PlaceUpsert":
        if not self.slug:
            self.slug = generate_slug(self.name)
        if not self.slug:
            raise ValueError(f"cannot derive a slug from name {self.name!r}")
        return self


class MapFilters(BaseModel):
    """Query-shaping state for search; empty lists mean "no constraint"."""

    counties: List[str] = Field(default_factory=list)
    cuisines: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    priceRange: Tuple[int, int] = (1, 4)
    rating: float = Field(default=0.0, ge=0, le=5)
    featured: bool = False
    verified: bool = False

    @field_validator("counties", "cuisines", "tags")
    @classmethod
    def _drop_blank(cls, v: List[str]) -> List[str]:
        return [s.strip() for s in v if s and s.strip()]

    @field_validator("priceRange")
    @classmethod
    def _check_price_range(cls, v: Tuple[int, int]) -> Tuple[int, int]:
        lo, hi = v
        if not (1 <= lo <= 4 and 1 <= hi <= 4):
            raise ValueError(f"priceRange bounds must be within 1..4: {v}")
        if lo > hi:
            raise ValueError(f"priceRange min must not exceed max: {v}")
        return lo, hi


class PlacesResponse(BaseModel):
    data: List[Place]


class NearbyPlacesResponse(BaseModel):
    data: List[NearbyPlace]


class DashboardStats(BaseModel):
    totalPlaces: int = 0
    publishedPlaces: int = 0
    draftPlaces: int = 0
    featuredPlaces: int = 0


class ImportResult(BaseModel):
    success: bool
    imported: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)


class IngestResponse(BaseModel):
    success: bool = True
    data: Place


# ──────────────────────────────────────────────────────────────
# Merch + episodes
# ──────────────────────────────────────────────────────────────

class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    price: float = 0.0
    currency: str = "USD"
    image: str = ""
    category: str = "General"
    inStock: bool = True
    checkoutUrl: str


class Episode(BaseModel):
    id: str
    title: str
    description: str = ""
    thumbnail: str
    publishedAt: Optional[str] = None  # ISO8601 UTC
    videoId: str
    duration: Optional[str] = None
    viewCount: Optional[int] = None


# ──────────────────────────────────────────────────────────────
# Cache admin
# ──────────────────────────────────────────────────────────────

class CacheStats(BaseModel):
    validCached: int = 0
    expiredCached: int = 0
    oldestCache: Optional[str] = None
    newestCache: Optional[str] = None
    itemsCached: int = 0  # products: == validCached; episodes: episodes in the valid row


class CacheStatsResponse(BaseModel):
    products: CacheStats
    episodes: CacheStats


CacheType = Literal["products", "episodes", "all"]


class CacheClearResponse(BaseModel):
    success: bool = True
    cleared: List[str]
    message: str


class WebhookAck(BaseModel):
    success: bool = True
