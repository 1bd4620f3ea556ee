# Overview: Service-layer reconciliation; recomputes the cached stock counter from the ledger.

from __future__ import annotations

from dataclasses import dataclass, asdict, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product
from ..time_utils import utcnow, to_utc_z
from .catalog_service import ensure_product
from .concurrency import product_guard, run_with_retry
from .exceptions import StockError
from .stock_calculator import calculate_stock
"""
Reconciliation Invariants (authoritative)

- The ledger is authoritative; Product.current_stock is a materialized view.
- sync overwrites the counter unconditionally and is idempotent: a second
  sync with no new events reports delta == 0.
- Drift is reported (drift_detected), never raised.
- Safe to run alongside live traffic: each product is synced under its guard,
  last write wins.
- After a stock operation commits, the counter refresh is a separate,
  best-effort step. If it fails the operation is NOT rolled back; the counter
  stays stale until the next sync.
"""


@dataclass
class SyncResult:
    product_id: int
    product_name: str | None = None
    previous: int | None = None
    recalculated: int | None = None
    delta: int = 0
    drift_detected: bool = False
    negative_stock: bool = False
    synchronized: bool = True
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SyncSummary:
    total_products: int = 0
    successful: int = 0
    failed: int = 0
    drifted: int = 0
    results: list[SyncResult] = field(default_factory=list)
    timestamp: str | None = None

    def to_dict(self) -> dict:
        return {
            "total_products": self.total_products,
            "successful": self.successful,
            "failed": self.failed,
            "drifted": self.drifted,
            "results": [r.to_dict() for r in self.results],
            "timestamp": self.timestamp,
        }


def sync_product(product_id: int) -> SyncResult:
    """Recalculate a product's stock and overwrite the cached counter."""
    def _op() -> SyncResult:
        product = ensure_product(product_id, lock=True)
        previous = product.current_stock or 0
        recalculated = calculate_stock(product.id)

        product.current_stock = recalculated
        db.session.commit()

        return SyncResult(
            product_id=product.id,
            product_name=product.name,
            previous=previous,
            recalculated=recalculated,
            delta=recalculated - previous,
            drift_detected=recalculated != previous,
            negative_stock=recalculated < 0,
        )

    with product_guard(product_id):
        result = run_with_retry(_op)

    if result.drift_detected:
        current_app.logger.warning(
            "Stock drift corrected for product %s (%s): %s -> %s (%+d)",
            result.product_id, result.product_name, result.previous, result.recalculated, result.delta,
        )
    return result


def sync_all() -> SyncSummary:
    """
    Sync every product. A failing product is reported in its result and does
    not stop the run.
    """
    product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]
    summary = SyncSummary(total_products=len(product_ids))

    current_app.logger.info("Starting stock synchronization for %d products", len(product_ids))

    for product_id in product_ids:
        try:
            result = sync_product(product_id)
        except (StockError, SQLAlchemyError) as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to sync stock for product %s", product_id)
            result = SyncResult(product_id=product_id, synchronized=False, error=str(exc))
        summary.results.append(result)

    summary.successful = sum(1 for r in summary.results if r.synchronized)
    summary.failed = summary.total_products - summary.successful
    summary.drifted = sum(1 for r in summary.results if r.drift_detected)
    summary.timestamp = to_utc_z(utcnow())

    current_app.logger.info(
        "Stock synchronization complete: %d successful, %d failed, %d drifted",
        summary.successful, summary.failed, summary.drifted,
    )
    return summary


def find_drift() -> list[SyncResult]:
    """Read-only drift report: products whose cached counter disagrees with the ledger."""
    drifted = []
    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        calculated = calculate_stock(product.id)
        cached = product.current_stock or 0
        if calculated != cached:
            drifted.append(SyncResult(
                product_id=product.id,
                product_name=product.name,
                previous=cached,
                recalculated=calculated,
                delta=calculated - cached,
                drift_detected=True,
                negative_stock=calculated < 0,
                synchronized=False,
            ))
    return drifted


def refresh_cached_stock(*product_ids: int) -> None:
    """
    Best-effort counter refresh after a committed stock operation.

    Failures are logged and left for reconciliation.
    """
    for product_id in sorted(set(product_ids)):
        try:
            def _op():
                product = ensure_product(product_id, lock=True)
                product.current_stock = calculate_stock(product.id)
                db.session.commit()

            run_with_retry(_op)
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "Failed to refresh cached stock for product %s; left for reconciliation", product_id
            )
