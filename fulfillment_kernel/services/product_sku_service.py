"""
ProductSKUService -- SKU set maintenance that respects the stock ledger.

Responsibility:
    Keeps a product's SKU rows in line with what product maintenance
    submits, either as a single implicit SKU (sync_single_sku) or as an
    explicit list (apply_skus).  Stock totals always change through
    StockLedgerService.resize, so maintenance can never cut a total below
    what is already locked or sold.

Architecture position:
    Kernel > Services.  Flush-only.  Product record CRUD itself lives
    outside the kernel; this service only writes the SKU rows and the
    product's derived display fields (price, manual stock total).

Invariants enforced:
    - SKU codes are unique per product, compared case-insensitively.
    - Prices are > 0 and rounded with round_money().
    - At least one submitted SKU is active.
    - SKUs are never deleted, only deactivated, so order items, cart lines
      and secrets that reference them keep resolving to a row.
    - Auto products carry total 0 on every SKU; their availability is the
      secret pool.

Failure modes:
    - ProductNotFoundError: unknown product.
    - SKUInvalidError: empty input, blank or repeated code, unknown SKU id,
      price <= 0, no active SKU.
    - InvalidQuantityError: negative total.
    - InvalidStateError: total below locked + sold (from the ledger).
"""

from decimal import Decimal

from sqlalchemy import select

from fulfillment_kernel.db.types import round_money
from fulfillment_kernel.domain.dtos import SKUInfo, SKUInput, SKUSummary
from fulfillment_kernel.exceptions import (
    InvalidQuantityError,
    ProductNotFoundError,
    SKUInvalidError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.product import (
    DEFAULT_SKU_CODE,
    FulfillmentType,
    Product,
    ProductSKU,
)
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.stock_ledger import StockLedgerService

logger = get_logger("services.product_sku")


def _code_key(code: str) -> str:
    return code.strip().lower()


class ProductSKUService(BaseService):
    """SKU maintenance with ledger-guarded stock totals."""

    def __init__(self, session, default_sku_code: str = DEFAULT_SKU_CODE):
        super().__init__(session)
        self._default_sku_code = default_sku_code
        self._ledger = StockLedgerService(session)

    def sync_single_sku(
        self,
        product_id: int,
        price_amount: Decimal,
        manual_stock_total: int,
    ) -> SKUInfo | None:
        """
        Mirror product-level price and stock onto a single-SKU product.

        - No SKU yet: create the default SKU.
        - Exactly one SKU: update price, resize total, reactivate.
        - Several SKUs: no-op (returns None); use apply_skus instead.
        """
        self._load_product(product_id)
        price = round_money(price_amount)
        if manual_stock_total < 0:
            raise InvalidQuantityError(manual_stock_total, "total must not be negative")

        skus = self._list_all(product_id)
        if len(skus) > 1:
            logger.debug(
                "sku_sync_skipped",
                extra={"product_id": product_id, "sku_count": len(skus)},
            )
            return None

        if not skus:
            sku = ProductSKU(
                product_id=product_id,
                sku_code=self._default_sku_code,
                spec_values={},
                price_amount=price,
                manual_stock_total=manual_stock_total,
                manual_stock_locked=0,
                manual_stock_sold=0,
                is_active=True,
                sort_order=0,
            )
            self.session.add(sku)
            self.session.flush()
            logger.info(
                "sku_default_created",
                extra={"product_id": product_id, "sku_id": sku.id},
            )
            return SKUInfo.from_model(sku)

        sku_id = skus[0].id
        self._ledger.resize(sku_id, manual_stock_total)
        sku = self._reload(sku_id)
        sku.price_amount = price
        sku.is_active = True
        self.session.flush()
        logger.info(
            "sku_synced",
            extra={
                "product_id": product_id,
                "sku_id": sku_id,
                "total": manual_stock_total,
            },
        )
        return SKUInfo.from_model(sku)

    def apply_skus(
        self,
        product_id: int,
        fulfillment_type: str | FulfillmentType,
        inputs: list[SKUInput],
    ) -> SKUSummary:
        """
        Make the product's SKU set match ``inputs``.

        Inputs with a sku_id update that SKU; inputs without one update the
        existing SKU with the same code (case-insensitive) or create a new
        SKU.  Existing SKUs not mentioned are deactivated.

        Returns:
            SKUSummary with the minimum active price and, for manual
            products, the summed total of the active SKUs.  Both are also
            written to the product row.
        """
        product = self._load_product(product_id)
        mode = FulfillmentType.normalize(fulfillment_type)
        rows, min_price, manual_total = self._normalize_inputs(mode, inputs)

        existing = self._list_all(product_id)
        by_id = {sku.id: sku for sku in existing}
        by_code = {_code_key(sku.sku_code): sku for sku in existing}
        kept: set[int] = set()

        # Explicit ids first, so a rename cannot be shadowed by a code match
        for row in (r for r in rows if r.sku_id > 0):
            sku = by_id.get(row.sku_id)
            if sku is None:
                raise SKUInvalidError(product_id, row.sku_id, "SKU does not belong to product")
            owner = by_code.get(_code_key(row.sku_code))
            if owner is not None and owner.id != sku.id:
                raise SKUInvalidError(
                    product_id, row.sku_id, f"code {row.sku_code!r} is used by SKU {owner.id}"
                )
            by_code.pop(_code_key(sku.sku_code), None)
            by_code[_code_key(row.sku_code)] = sku
            self._update(sku.id, row)
            kept.add(sku.id)

        for row in (r for r in rows if r.sku_id <= 0):
            sku = by_code.get(_code_key(row.sku_code))
            if sku is not None:
                if sku.id in kept:
                    raise SKUInvalidError(
                        product_id, sku.id, f"code {row.sku_code!r} submitted twice"
                    )
                self._update(sku.id, row)
                kept.add(sku.id)
                continue
            created = ProductSKU(
                product_id=product_id,
                sku_code=row.sku_code,
                spec_values=dict(row.spec_values or {}),
                price_amount=row.price_amount,
                manual_stock_total=row.manual_stock_total,
                manual_stock_locked=0,
                manual_stock_sold=0,
                is_active=row.is_active,
                sort_order=row.sort_order,
            )
            self.session.add(created)
            self.session.flush()
            kept.add(created.id)

        deactivated = []
        for sku in existing:
            if sku.id in kept:
                continue
            current = self._reload(sku.id)
            if current.is_active:
                current.is_active = False
                deactivated.append(sku.id)

        product.price_amount = min_price
        product.manual_stock_total = manual_total
        self.session.flush()

        skus = tuple(SKUInfo.from_model(sku) for sku in self._list_all(product_id))
        logger.info(
            "skus_applied",
            extra={
                "product_id": product_id,
                "sku_count": len(skus),
                "deactivated": deactivated,
                "min_price": min_price,
                "manual_stock_total": manual_total,
            },
        )
        return SKUSummary(
            product_id=product_id,
            skus=skus,
            min_price=min_price,
            manual_stock_total=manual_total,
        )

    # -------------------------------------------------------------------------

    def _normalize_inputs(
        self,
        mode: FulfillmentType,
        inputs: list[SKUInput],
    ) -> tuple[list[SKUInput], Decimal, int]:
        if not inputs:
            raise SKUInvalidError(None, 0, "at least one SKU is required")

        seen: set[str] = set()
        rows: list[SKUInput] = []
        min_price: Decimal | None = None
        manual_total = 0

        for raw in inputs:
            code = (raw.sku_code or "").strip()
            if not code:
                raise SKUInvalidError(None, raw.sku_id, "SKU code must not be blank")
            if code.lower() in seen:
                raise SKUInvalidError(None, raw.sku_id, f"duplicate SKU code {code!r}")
            seen.add(code.lower())

            price = round_money(raw.price_amount)
            if price <= 0:
                raise SKUInvalidError(None, raw.sku_id, f"price {price} must be positive")
            if raw.manual_stock_total < 0:
                raise InvalidQuantityError(raw.manual_stock_total, "total must not be negative")
            total = raw.manual_stock_total if mode == FulfillmentType.MANUAL else 0

            rows.append(
                SKUInput(
                    sku_code=code,
                    price_amount=price,
                    manual_stock_total=total,
                    sku_id=raw.sku_id,
                    is_active=raw.is_active,
                    sort_order=raw.sort_order,
                    spec_values=raw.spec_values,
                )
            )
            if raw.is_active:
                if min_price is None or price < min_price:
                    min_price = price
                manual_total += total

        if min_price is None:
            raise SKUInvalidError(None, 0, "at least one SKU must be active")
        return rows, min_price, manual_total

    def _update(self, sku_id: int, row: SKUInput) -> None:
        self._ledger.resize(sku_id, row.manual_stock_total)
        sku = self._reload(sku_id)
        sku.sku_code = row.sku_code
        sku.spec_values = dict(row.spec_values or {})
        sku.price_amount = row.price_amount
        sku.is_active = row.is_active
        sku.sort_order = row.sort_order
        self.session.flush()

    def _load_product(self, product_id: int) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def _list_all(self, product_id: int) -> list[ProductSKU]:
        return list(
            self.session.execute(
                select(ProductSKU)
                .where(ProductSKU.product_id == product_id)
                .order_by(ProductSKU.sort_order, ProductSKU.id)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def _reload(self, sku_id: int) -> ProductSKU:
        return self.session.execute(
            select(ProductSKU)
            .where(ProductSKU.id == sku_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
