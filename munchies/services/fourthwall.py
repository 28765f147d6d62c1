"""
Fourthwall merch adapter.

Sources, in order:
  1. Storefront API (only when FW_STOREFRONT_TOKEN is set)
       GET {api}/v1/collections/{slug}/products?storefront_token=...
  2. Public JSON feed on the shop domain, first 2xx wins:
       {shop}/products.json → {shop}/collections/all.json → {shop}/collections.json

Everything is normalized to core.contracts.Product. A failing storefront call
is logged and falls through to the feed; a feed that never answers 2xx (or
answers without a products list) raises UpstreamError.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from munchies.core.contracts import Product
from munchies.core.errors import UpstreamError
from munchies.core.text import clean_description, clean_html_text

logger = logging.getLogger(__name__)

FEED_PATHS = ("/products.json", "/collections/all.json", "/collections.json")

DEFAULT_CATEGORY = "General"
UNTITLED = "Untitled Product"


# ──────────────────────────────────────────────────────────────
# Field helpers
# ──────────────────────────────────────────────────────────────

def _to_price(x: Any) -> float:
    try:
        return float(x)
    except (TypeError, ValueError):
        return 0.0


def _first_image(images: Any) -> Optional[str]:
    if not isinstance(images, list) or not images:
        return None
    first = images[0]
    if isinstance(first, str):
        return first or None
    if isinstance(first, dict):
        return first.get("url") or first.get("src") or None
    return None


def _product_id(raw: Dict[str, Any]) -> str:
    pid = raw.get("id")
    if pid is not None and str(pid).strip():
        return str(pid)
    return str(raw.get("handle") or raw.get("slug") or "")


# ──────────────────────────────────────────────────────────────
# Normalizers
# ──────────────────────────────────────────────────────────────

def normalize_feed_product(raw: Dict[str, Any], *, shop_url: str, currency: str = "USD") -> Product:
    """One product from the public {shop}/products.json-style feed."""
    handle = raw.get("handle") or raw.get("slug") or ""

    price = raw.get("price")
    if price is None:
        variants = raw.get("variants") or []
        if variants and isinstance(variants[0], dict):
            price = variants[0].get("price")

    image = raw.get("featured_image")
    if isinstance(image, dict):
        image = image.get("src") or image.get("url")
    image = image or _first_image(raw.get("images")) or ""

    return Product(
        id=_product_id(raw),
        name=clean_html_text(raw.get("title") or raw.get("name")) or UNTITLED,
        description=clean_description(raw.get("description") or raw.get("body_html") or ""),
        price=_to_price(price),
        currency=currency,
        image=image,
        category=raw.get("product_type") or DEFAULT_CATEGORY,
        inStock=raw.get("available") is not False,
        checkoutUrl=f"{shop_url}/products/{handle}",
    )


def normalize_storefront_product(raw: Dict[str, Any], *, shop_url: str, currency: str = "USD") -> Product:
    """One product from the Storefront API `results` list."""
    handle = raw.get("slug") or raw.get("handle") or ""

    price: Any = None
    cur = currency
    variants = raw.get("variants") or []
    if variants and isinstance(variants[0], dict):
        unit = variants[0].get("unitPrice") or {}
        price = unit.get("value")
        cur = unit.get("currency") or currency
        in_stock = (variants[0].get("stock") or {}).get("type") != "OUT_OF_STOCK"
    else:
        in_stock = True

    return Product(
        id=_product_id(raw),
        name=clean_html_text(raw.get("name") or raw.get("title")) or UNTITLED,
        description=clean_description(raw.get("description") or ""),
        price=_to_price(price),
        currency=cur,
        image=_first_image(raw.get("images")) or "",
        category=raw.get("type") or raw.get("product_type") or DEFAULT_CATEGORY,
        inStock=in_stock and raw.get("available") is not False,
        checkoutUrl=f"{shop_url}/products/{handle}",
    )


# ──────────────────────────────────────────────────────────────
# Adapter
# ──────────────────────────────────────────────────────────────

class FourthwallProducts:
    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        shop_url: str,
        storefront_api_url: str,
        storefront_token: Optional[str] = None,
        collection_slug: str = "all",
        currency: str = "USD",
        user_agent: str = "munchies/1.0",
    ):
        self.client = client
        self.shop_url = shop_url.rstrip("/")
        self.storefront_api_url = storefront_api_url.rstrip("/")
        self.storefront_token = storefront_token
        self.collection_slug = collection_slug or "all"
        self.currency = currency
        self.headers = {"Accept": "application/json", "User-Agent": user_agent}

    async def fetch_products(self) -> List[Product]:
        if self.storefront_token:
            products = await self._fetch_storefront()
            if products is not None:
                return products
        return await self._fetch_public_feed()

    async def _fetch_storefront(self) -> Optional[List[Product]]:
        """None means "fall back to the public feed"."""
        url = f"{self.storefront_api_url}/v1/collections/{self.collection_slug}/products"
        try:
            r = await self.client.get(
                url,
                params={"storefront_token": self.storefront_token},
                headers=self.headers,
            )
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("fourthwall storefront failed, falling back to feed: %s", e)
            return None

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            logger.warning("fourthwall storefront body has no results list, falling back to feed")
            return None

        products = [
            normalize_storefront_product(p, shop_url=self.shop_url, currency=self.currency)
            for p in results
            if isinstance(p, dict)
        ]
        logger.info("fourthwall storefront ok products=%d", len(products))
        return products

    async def _fetch_public_feed(self) -> List[Product]:
        last_err: Optional[str] = None

        for path in FEED_PATHS:
            url = f"{self.shop_url}{path}"
            try:
                r = await self.client.get(url, headers=self.headers)
            except httpx.HTTPError as e:
                last_err = f"{url}: {e}"
                logger.warning("fourthwall feed request failed url=%s err=%s", url, e)
                continue

            if not r.is_success:
                last_err = f"{url}: HTTP {r.status_code}"
                logger.info("fourthwall feed miss url=%s status=%d", url, r.status_code)
                continue

            # First 2xx is authoritative.
            try:
                data = r.json()
            except ValueError as e:
                raise UpstreamError(f"fourthwall feed {url} returned invalid JSON: {e}") from e

            raw = data.get("products") if isinstance(data, dict) else None
            if not isinstance(raw, list):
                raise UpstreamError(f"fourthwall feed {url} has no products list")

            products = [
                normalize_feed_product(p, shop_url=self.shop_url, currency=self.currency)
                for p in raw
                if isinstance(p, dict)
            ]
            logger.info("fourthwall feed ok url=%s products=%d", url, len(products))
            return products

        raise UpstreamError(f"fourthwall feed unavailable ({last_err or 'no response'})")
