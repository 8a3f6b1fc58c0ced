# catalog.py
from typing import List, Optional

from schemas import Product, Variant


def filter_products(products: List[Product], query: str):
    """
    Products whose name, or any variant's SKU or barcode, contains the
    query (case-insensitive). An empty query returns everything; the
    query is not trimmed, so whitespace matches literally.
    """
    if not query:
        return list(products)
    q = query.lower()
    result = []
    for product in products:
        if q in product.name.lower():
            result.append(product)
            continue
        for v in product.variants:
            if q in v.sku.lower() or (v.barcode and q in v.barcode.lower()):
                result.append(product)
                break
    return result


class CatalogSnapshot:
    """Products and variants as of one fetch. Replaced, never edited."""
    def __init__(self, products: Optional[List[Product]] = None):
        self._products = tuple(products or ())
        self._variants = {}
        for p in self._products:
            for v in p.variants:
                self._variants[v.id] = (p, v)

    @property
    def products(self):
        return self._products

    def __len__(self):
        return len(self._products)

    def search(self, query: str):
        return filter_products(self._products, query)

    def find_variant(self, variant_id):
        """Return (product, variant) or None."""
        return self._variants.get(str(variant_id))

    def find_by_code(self, code: str):
        """Exact SKU or barcode lookup, for scanner input."""
        code = (code or "").strip().lower()
        if not code:
            return None
        for product, variant in self._variants.values():
            if variant.sku.lower() == code or (variant.barcode or "").lower() == code:
                return product, variant
        return None

    def low_stock(self, threshold: int = 10):
        """(product, variant) pairs at or below threshold, lowest first."""
        rows = [(p, v) for p, v in self._variants.values() if v.stock_quantity <= threshold]
        return sorted(rows, key=lambda pv: pv[1].stock_quantity)

    def variant_rows(self):
        """One flat dict per variant, for tables and exports."""
        rows = []
        for p in self._products:
            for v in p.variants:
                rows.append(_variant_row(p, v))
        return rows


def _variant_row(product: Product, variant: Variant):
    return {
        "product_id": product.id,
        "name": product.name,
        "description": product.description or "",
        "variant_id": variant.id,
        "sku": variant.sku,
        "barcode": variant.barcode or "",
        "size": variant.size or "",
        "color": variant.color or "",
        "price": float(variant.price),
        "cost_price": float(variant.cost_price),
        "stock_quantity": variant.stock_quantity,
    }
