"""Product catalogue maintenance: resolve-or-create, statistics and price history."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd

from .classifier import CategoryClassifier
from .errors import NotFoundError
from .matcher import CatalogCandidate, ProductMatcher
from .models import Category, Invoice, InvoiceItem, NormalizedProduct, PriceHistoryEntry, Product
from .normalizer import ProductNormalizer
from .repository import Repository
from .store import UniqueConstraintError
from .utils import KeyedLocks, new_id, round_money, utcnow


LOGGER = logging.getLogger(__name__)

PRICE_COLUMNS = ["purchase_date", "unit_price", "quantity", "merchant_name", "merchant_cnpj", "invoice_id"]


def _catalog_entry(product: Product) -> CatalogCandidate:
    return CatalogCandidate(
        product_id=product.id,
        product=NormalizedProduct(
            normalized_name=product.name,
            original_name=product.name,
            product_code=product.product_code,
            ncm_code=product.ncm_code,
            brand=product.brand,
            is_promotion=product.is_promotion,
        ),
    )


class ProductCatalog:
    """Keeps one :class:`Product` per physical product and user.

    Product resolution is serialised per user and statistic updates per
    product, so concurrent ingestions neither duplicate products nor lose
    updates.
    """

    def __init__(
        self,
        repository: Repository,
        *,
        normalizer: Optional[ProductNormalizer] = None,
        matcher: Optional[ProductMatcher] = None,
        classifier: Optional[CategoryClassifier] = None,
    ) -> None:
        self.repository = repository
        self.normalizer = normalizer or ProductNormalizer()
        self.matcher = matcher or ProductMatcher()
        self.classifier = classifier or CategoryClassifier()
        self._user_locks = KeyedLocks()
        self._product_locks = KeyedLocks()

    def resolve_product(
        self,
        user_id: str,
        description: str,
        product_code: Optional[str] = None,
        ncm_code: Optional[str] = None,
    ) -> Product:
        normalized = self.normalizer.normalize(description, product_code, ncm_code)
        category = self.classifier.classify_product(description, ncm_code)

        with self._user_locks.hold(user_id):
            product = self._find_existing(user_id, normalized)
            if product is None:
                return self._create_product(user_id, description, normalized, category)

            if product.category is Category.OTHER and category is not Category.OTHER:
                LOGGER.info("Upgrading category of product %s to %s", product.id, category.value)
                product = self.repository.update_product(product.id, {"category": category, "updated_at": utcnow()})
            return product

    def _find_existing(self, user_id: str, normalized: NormalizedProduct) -> Optional[Product]:
        if normalized.product_code:
            product = self.repository.find_product_by_code(user_id, normalized.product_code)
            if product is not None:
                return product

        candidates = [
            _catalog_entry(product)
            for product in self.repository.list_products(user_id)
            # a different barcode always names a different product
            if not (normalized.product_code and product.product_code)
        ]
        best = self.matcher.find_best_match(normalized, candidates)
        if best is None:
            return None
        return self.repository.get_product(best[0].product_id)

    def _create_product(
        self,
        user_id: str,
        description: str,
        normalized: NormalizedProduct,
        category: Category,
    ) -> Product:
        now = utcnow()
        product = Product(
            id=new_id(),
            user_id=user_id,
            name=normalized.normalized_name or description.strip(),
            category=category,
            product_code=normalized.product_code,
            ncm_code=normalized.ncm_code,
            brand=normalized.brand,
            is_promotion=normalized.is_promotion,
            created_at=now,
            updated_at=now,
        )
        try:
            created = self.repository.create_product(product)
        except UniqueConstraintError:
            existing = self.repository.find_product_by_code(user_id, normalized.product_code or "")
            if existing is None:
                raise
            LOGGER.info("Product with code %s created concurrently; reusing %s", normalized.product_code, existing.id)
            return existing

        LOGGER.info("Created product %s ('%s') for user %s", created.id, created.name, user_id)
        return created

    def record_purchase(self, product_id: str, unit_price: float, purchase_date: datetime) -> Product:
        """Count one more purchase and fold ``unit_price`` into the running mean.

        The mean is unweighted: every line item counts once whatever its quantity.
        """

        with self._product_locks.hold(product_id):
            product = self._require_product(product_id)
            count = product.total_purchases
            average = (product.average_price * count + unit_price) / (count + 1)
            last = product.last_purchase_date
            if last is None or purchase_date > last:
                last = purchase_date
            return self.repository.update_product(
                product_id,
                {
                    "total_purchases": count + 1,
                    "average_price": average,
                    "last_purchase_date": last,
                    "updated_at": utcnow(),
                },
            )

    def reverse_purchase(self, product_id: str, excluding_invoice_id: str) -> Product:
        with self._product_locks.hold(product_id):
            product = self._require_product(product_id)
            count = max(product.total_purchases - 1, 0)
            if count == 0:
                changes: Dict[str, Any] = {"total_purchases": 0, "average_price": 0.0, "last_purchase_date": None}
            else:
                entries = self.repository.price_entries(product_id, exclude_invoice_id=excluding_invoice_id)
                prices = [entry.unit_price for entry in entries]
                changes = {
                    "total_purchases": count,
                    "average_price": sum(prices) / len(prices) if prices else 0.0,
                    "last_purchase_date": max((entry.purchase_date for entry in entries), default=None),
                }
            changes["updated_at"] = utcnow()
            return self.repository.update_product(product_id, changes)

    def append_price_history(self, invoice: Invoice, item: InvoiceItem) -> PriceHistoryEntry:
        return self.repository.add_price_entry(
            PriceHistoryEntry(
                id=new_id(),
                user_id=invoice.user_id,
                product_id=item.product_id,
                invoice_id=invoice.id,
                merchant_cnpj=invoice.merchant_cnpj,
                merchant_name=invoice.merchant_name,
                purchase_date=invoice.issue_date,
                unit_price=item.unit_price,
                quantity=item.quantity,
                created_at=utcnow(),
            )
        )

    def delete_price_history(self, invoice_id: str) -> int:
        removed = self.repository.delete_price_entries_for_invoice(invoice_id)
        LOGGER.debug("Removed %s price history entries of invoice %s", removed, invoice_id)
        return removed

    def get_product(self, user_id: str, product_id: str) -> Product:
        product = self.repository.get_product(product_id)
        if product is None or product.user_id != user_id:
            raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND", details={"product_id": product_id})
        return product

    def list_products(self, user_id: str) -> List[Product]:
        return self.repository.list_products(user_id)

    def price_frame(self, user_id: str, product_id: str, days: int = 90) -> pd.DataFrame:
        """Price history of a product as a DataFrame, newest purchase first."""

        self.get_product(user_id, product_id)
        since = utcnow() - timedelta(days=days)
        entries = self.repository.price_entries(product_id, user_id=user_id, since=since)
        frame = pd.DataFrame([{column: getattr(entry, column) for column in PRICE_COLUMNS} for entry in entries])
        if frame.empty:
            return pd.DataFrame(columns=PRICE_COLUMNS)
        frame["purchase_date"] = pd.to_datetime(frame["purchase_date"])
        return frame.sort_values("purchase_date", ascending=False, kind="stable").reset_index(drop=True)

    def price_history(self, user_id: str, product_id: str, days: int = 90) -> Dict[str, Any]:
        product = self.get_product(user_id, product_id)
        frame = self.price_frame(user_id, product_id, days)
        prices = frame["unit_price"].astype(float) if not frame.empty else pd.Series(dtype=float)
        lowest = float(prices.min()) if not prices.empty else 0.0
        highest = float(prices.max()) if not prices.empty else 0.0
        return {
            "product_id": product.id,
            "product_name": product.name,
            "prices": [
                {
                    "date": row.purchase_date.isoformat(),
                    "price": float(row.unit_price),
                    "quantity": float(row.quantity),
                    "merchant_name": row.merchant_name,
                    "merchant_cnpj": row.merchant_cnpj,
                    "invoice_id": row.invoice_id,
                }
                for row in frame.itertuples(index=False)
            ],
            "lowest_price": lowest,
            "highest_price": highest,
            "average_price": round_money(float(prices.mean())) if not prices.empty else 0.0,
            "price_range": round_money(highest - lowest),
        }

    def average_price_by_merchant(self, user_id: str, product_id: str, days: int = 90) -> List[Dict[str, Any]]:
        """Per-merchant price statistics, cheapest merchant first."""

        frame = self.price_frame(user_id, product_id, days)
        if frame.empty:
            return []

        grouped = (
            frame.groupby(["merchant_cnpj", "merchant_name"], sort=False, dropna=False)
            .agg(
                average_price=("unit_price", "mean"),
                lowest_price=("unit_price", "min"),
                highest_price=("unit_price", "max"),
                purchase_count=("unit_price", "size"),
                last_purchase_date=("purchase_date", "max"),
            )
            .reset_index()
            .sort_values(["average_price", "merchant_name"], kind="stable")
        )
        return [
            {
                "merchant_cnpj": row.merchant_cnpj,
                "merchant_name": row.merchant_name,
                "average_price": round_money(float(row.average_price)),
                "lowest_price": float(row.lowest_price),
                "highest_price": float(row.highest_price),
                "purchase_count": int(row.purchase_count),
                "last_purchase_date": row.last_purchase_date.isoformat(),
            }
            for row in grouped.itertuples(index=False)
        ]

    def compare_price(self, user_id: str, product_id: str, days: int = 90) -> Dict[str, Any]:
        history = self.price_history(user_id, product_id, days)
        merchants = self.average_price_by_merchant(user_id, product_id, days)
        if not merchants:
            raise NotFoundError(
                "No price data available for comparison", code="NO_PRICE_DATA", details={"product_id": product_id}
            )

        best, worst = merchants[0], merchants[-1]
        current = history["prices"][0]["price"]
        average = history["average_price"]
        difference = round((current - average) / average * 100, 2) if average else 0.0
        return {
            "product_id": product_id,
            "product_name": history["product_name"],
            "merchants": merchants,
            "current_price": current,
            "overall_lowest_price": history["lowest_price"],
            "overall_highest_price": history["highest_price"],
            "overall_average_price": average,
            "difference_percent": difference,
            "best_merchant": best["merchant_name"],
            "savings_potential": round_money(worst["average_price"] - best["average_price"]),
        }

    def _require_product(self, product_id: str) -> Product:
        product = self.repository.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND", details={"product_id": product_id})
        return product


__all__ = ["ProductCatalog"]
