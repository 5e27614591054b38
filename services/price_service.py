"""
Price window resolution and price history writes.

Price records hold a half-open validity range [start, end). The currently
effective price of an item is the record whose range contains the as-of
day. Records of one item are not supposed to overlap: writes keep them
apart (see plan_price_write), and reads still tolerate legacy overlaps by
picking the record with the latest start, then the highest id.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, Optional, Sequence, TypeVar
import structlog

from config import get_supabase_client, settings
from models.catalog import PriceRecord
from exceptions import StoreError
from utils.date_utils import format_daterange, parse_daterange

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PRICE_COLUMNS = "price_id, supplier_product_id, price_ex_gst, effective, start_date"


def chunked(values: Sequence[T], size: int) -> Iterator[list[T]]:
    """Consecutive slices of at most size elements."""
    for start in range(0, len(values), size):
        yield list(values[start:start + size])


def price_record_from_row(row: dict) -> PriceRecord:
    """Build a PriceRecord from a price_history row (daterange text)."""
    start, end = parse_daterange(row.get("effective") or "")
    if start is None and row.get("start_date"):
        start = date.fromisoformat(str(row["start_date"])[:10])
    return PriceRecord(
        price_id=row["price_id"],
        supplier_product_id=row["supplier_product_id"],
        price_ex_gst=Decimal(str(row["price_ex_gst"])),
        start_date=start or date.min,
        end_date=end,
    )


def pick_effective(records: Iterable[PriceRecord]) -> Optional[PriceRecord]:
    """
    The one record to use when several overlap the same day.

    Latest start wins; equal starts fall back to the highest price_id.
    """
    best: Optional[PriceRecord] = None
    for record in records:
        if best is None or (record.start_date, record.price_id) > (best.start_date, best.price_id):
            best = record
    return best


def select_current_prices(
    records: Iterable[PriceRecord],
    as_of: date
) -> dict[int, PriceRecord]:
    """Effective record per item on as_of, with overlap tie-break logged."""
    by_item: dict[int, list[PriceRecord]] = {}
    for record in records:
        if record.contains(as_of):
            by_item.setdefault(record.supplier_product_id, []).append(record)

    chosen: dict[int, PriceRecord] = {}
    for item_id, candidates in by_item.items():
        if len(candidates) > 1:
            logger.warning(
                "overlapping_price_records",
                supplier_product_id=item_id,
                price_ids=sorted(c.price_id for c in candidates),
                as_of=as_of.isoformat()
            )
        chosen[item_id] = pick_effective(candidates)
    return chosen


@dataclass
class PriceWritePlan:
    """Store changes needed to add one price without overlapping others."""
    updates: list[tuple[int, dict]] = field(default_factory=list)
    insert: Optional[dict] = None

    @property
    def is_empty(self) -> bool:
        return not self.updates and self.insert is None


def plan_price_write(
    existing: Iterable[PriceRecord],
    item_id: int,
    amount: Decimal,
    effective: date,
) -> PriceWritePlan:
    """
    Plan adding `amount` for `item_id` from `effective` onwards.

    - A record starting on `effective` is re-priced in place (re-applying
      the same price is a no-op).
    - Records running across `effective` are closed at `effective`.
    - The new record ends where the next later record starts, else stays open.

    Args:
        existing: Records of this item that are live on or after `effective`
        item_id: supplier_product_id
        amount: Price ex GST
        effective: First day the price applies

    Returns:
        PriceWritePlan with range updates and the row to insert
    """
    plan = PriceWritePlan()
    later_starts: list[date] = []
    same_day: Optional[PriceRecord] = None

    for record in existing:
        if record.supplier_product_id != item_id:
            continue
        if record.end_date is not None and record.end_date <= effective:
            continue

        if record.start_date == effective:
            same_day = pick_effective([r for r in (same_day, record) if r])
        elif record.start_date < effective:
            plan.updates.append((
                record.price_id,
                {"effective": format_daterange(record.start_date, effective)},
            ))
        else:
            later_starts.append(record.start_date)

    if same_day is not None:
        if same_day.price_ex_gst != amount:
            plan.updates.append((same_day.price_id, {"price_ex_gst": str(amount)}))
        return plan

    end = min(later_starts) if later_starts else None
    plan.insert = {
        "supplier_product_id": item_id,
        "price_ex_gst": str(amount),
        "effective": format_daterange(effective, end),
    }
    return plan


class PriceService:
    """
    Price history access.

    Handles:
    - Resolving the current price of many items (chunked lookups)
    - Writing new prices while keeping validity ranges disjoint
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "price_history"
        self.chunk_size = settings.price_lookup_chunk_size

    def resolve_current_prices(
        self,
        item_ids: Sequence[int],
        as_of: Optional[date] = None
    ) -> dict[int, Optional[Decimal]]:
        """
        Currently effective price per item.

        Looks up records overlapping [as_of, as_of + 1 day) in chunks of
        chunk_size ids.

        Args:
            item_ids: supplier_product_ids to price
            as_of: Day to resolve for (defaults to today)

        Returns:
            item id → price, None for items without an effective record
        """
        as_of = as_of or date.today()
        window = format_daterange(as_of, as_of + timedelta(days=1))
        unique_ids = list(dict.fromkeys(item_ids))
        records: list[PriceRecord] = []

        for chunk in chunked(unique_ids, self.chunk_size):
            try:
                result = (
                    self.db.table(self.table)
                    .select(PRICE_COLUMNS)
                    .in_("supplier_product_id", chunk)
                    .filter("effective", "ov", window)
                    .execute()
                )
            except Exception as e:
                logger.error(
                    "price_lookup_failed",
                    chunk_size=len(chunk),
                    as_of=as_of.isoformat(),
                    error=str(e)
                )
                raise StoreError("select", str(e))
            records.extend(price_record_from_row(row) for row in result.data or [])

        chosen = select_current_prices(records, as_of)
        prices = {
            item_id: (chosen[item_id].price_ex_gst if item_id in chosen else None)
            for item_id in unique_ids
        }

        logger.info(
            "current_prices_resolved",
            items=len(unique_ids),
            priced=len(chosen),
            as_of=as_of.isoformat()
        )
        return prices

    def get_live_records(self, item_ids: Sequence[int], since: date) -> list[PriceRecord]:
        """Records of these items that are live on or after `since`."""
        records: list[PriceRecord] = []
        for chunk in chunked(list(item_ids), self.chunk_size):
            try:
                result = (
                    self.db.table(self.table)
                    .select(PRICE_COLUMNS)
                    .in_("supplier_product_id", chunk)
                    .filter("effective", "ov", format_daterange(since))
                    .execute()
                )
            except Exception as e:
                logger.error("live_price_lookup_failed", error=str(e))
                raise StoreError("select", str(e))
            records.extend(price_record_from_row(row) for row in result.data or [])
        return records

    def apply_prices(self, prices: dict[int, Decimal], effective: date) -> int:
        """
        Write prices effective from `effective`.

        Returns:
            Number of items whose price history changed
        """
        if not prices:
            return 0

        existing = self.get_live_records(list(prices), effective)
        inserts: list[dict] = []
        changed = 0

        for item_id, amount in prices.items():
            plan = plan_price_write(existing, item_id, amount, effective)
            if plan.is_empty:
                continue
            changed += 1
            try:
                for price_id, values in plan.updates:
                    self.db.table(self.table).update(values).eq("price_id", price_id).execute()
            except Exception as e:
                logger.error("price_update_failed", supplier_product_id=item_id, error=str(e))
                raise StoreError("update", str(e))
            if plan.insert:
                inserts.append(plan.insert)

        if inserts:
            try:
                self.db.table(self.table).insert(inserts).execute()
            except Exception as e:
                logger.error("price_insert_failed", count=len(inserts), error=str(e))
                raise StoreError("insert", str(e))

        logger.info(
            "prices_applied",
            items=len(prices),
            changed=changed,
            inserted=len(inserts),
            effective=effective.isoformat()
        )
        return changed


# Singleton instance for convenience
_price_service: Optional[PriceService] = None


def get_price_service() -> PriceService:
    """Get or create PriceService instance."""
    global _price_service
    if _price_service is None:
        _price_service = PriceService()
    return _price_service
