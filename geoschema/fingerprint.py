import hashlib
import html
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

FINGERPRINT_FIELDS = ('description', 'title', 'vendor')

_TAG_RE = re.compile(r'<[^>]+>')


@dataclass(frozen=True)
class ProductInput:
    product_id: str
    title: str = ''
    description: str = ''
    vendor: str = ''
    price: Optional[str] = None
    sku: Optional[str] = None


def _field(product, name) -> str:
    if isinstance(product, dict):
        value = product.get(name)
    else:
        value = getattr(product, name, None)
    return '' if value is None else value


def compute_fingerprint(product) -> str:
    """
    Compute the SHA-256 fingerprint of a product's content fields.

    Only description, title and vendor take part; price, SKU and anything
    else on the product never change the fingerprint. Accepts a ProductInput
    or a plain dict.
    """
    canonical = {name: _field(product, name) for name in FINGERPRINT_FIELDS}
    # Same bytes as JSON.stringify over the sorted fields.
    serialized = json.dumps(canonical, sort_keys=True, ensure_ascii=False, separators=(',', ':'))
    return hashlib.sha256(serialized.encode('utf-8')).hexdigest()


def is_changed(product, stored_fingerprint: Optional[str]) -> bool:
    if not stored_fingerprint:
        return True
    return compute_fingerprint(product) != stored_fingerprint


def _strip_html(value: str) -> str:
    return ' '.join(html.unescape(_TAG_RE.sub(' ', value)).split())


def normalize_product(raw: dict) -> Optional[ProductInput]:
    """
    Turn a storefront product payload into a ProductInput.

    Returns None (and logs a warning) if the payload carries no product id.
    """
    product_id = raw.get('admin_graphql_api_id') or raw.get('id')
    if not product_id:
        logger.warning("Skipping product payload without an id: title=%r.", raw.get('title'))
        return None

    description = raw.get('description')
    if description is None:
        description = _strip_html(raw.get('body_html') or '')

    variants = raw.get('variants') or []
    first_variant = variants[0] if variants else {}
    price = first_variant.get('price')

    return ProductInput(
        product_id=str(product_id),
        title=raw.get('title') or '',
        description=description,
        vendor=raw.get('vendor') or '',
        price=str(price) if price is not None else None,
        sku=first_variant.get('sku') or None,
    )
