"""
Report aggregations over a user's transactions.

All figures are computed on demand by MongoDB aggregation pipelines that
start with a ``$match`` on the owner. Nothing here writes to the store.
"""
from datetime import date, datetime, time
from typing import List, Optional, Tuple

from bson import ObjectId
from pymongo.collection import Collection

from database import to_utc
from errors import ValidationError
from schemas import CategoryTotal, MonthlyTotal, Summary, TransactionType

DEFAULT_MONTHS = 6
MAX_MONTHS = 24


def _money(value) -> float:
    return round(float(value or 0), 2)


def parse_date_bound(value: Optional[str], end: bool = False) -> Optional[datetime]:
    """Parse an ISO date or datetime query value.

    A bare date (``YYYY-MM-DD``) used as an upper bound covers that whole day.
    """
    if value is None or value == "":
        return None
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end else time.min)
        return to_utc(datetime.fromisoformat(value))
    except ValueError:
        raise ValidationError(f"Invalid date: {value}")


def date_range_match(start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
    start, end = to_utc(start), to_utc(end)
    if start is not None and end is not None and start > end:
        raise ValidationError("startDate must not be after endDate")
    date_query = {}
    if start is not None:
        date_query["$gte"] = start
    if end is not None:
        date_query["$lte"] = end
    return date_query


def summarize(
    collection: Collection,
    owner_id: ObjectId,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Summary:
    match: dict = {"user_id": owner_id}
    date_query = date_range_match(start, end)
    if date_query:
        match["date"] = date_query

    pipeline = [
        {"$match": match},
        {"$group": {
            "_id": "$type",
            "total": {"$sum": "$amount"},
            "count": {"$sum": 1},
        }},
    ]
    totals = {TransactionType.INCOME.value: 0.0, TransactionType.EXPENSE.value: 0.0}
    for row in collection.aggregate(pipeline):
        totals[row["_id"]] = row["total"]

    income = _money(totals[TransactionType.INCOME.value])
    expenses = _money(totals[TransactionType.EXPENSE.value])
    return Summary(total_income=income, total_expenses=expenses, net_savings=_money(income - expenses))


def category_breakdown(collection: Collection, owner_id: ObjectId) -> List[CategoryTotal]:
    """Expense totals per category, largest first; ties ordered by category name."""
    pipeline = [
        {"$match": {"user_id": owner_id, "type": TransactionType.EXPENSE.value}},
        {"$group": {
            "_id": "$category",
            "total": {"$sum": "$amount"},
            "count": {"$sum": 1},
        }},
        {"$sort": {"total": -1, "_id": 1}},
    ]
    return [
        CategoryTotal(category=row["_id"], total=_money(row["total"]), count=row["count"])
        for row in collection.aggregate(pipeline)
    ]


def monthly_spending(collection: Collection, owner_id: ObjectId, months: int = DEFAULT_MONTHS) -> List[MonthlyTotal]:
    """Expense totals for the latest ``months`` calendar months that have data, oldest first."""
    if months < 1 or months > MAX_MONTHS:
        raise ValidationError(f"months must be between 1 and {MAX_MONTHS}")

    pipeline = [
        {"$match": {"user_id": owner_id, "type": TransactionType.EXPENSE.value}},
        {"$group": {
            "_id": {"year": {"$year": "$date"}, "month": {"$month": "$date"}},
            "total": {"$sum": "$amount"},
            "count": {"$sum": 1},
        }},
    ]
    rows: List[Tuple[int, int, float, int]] = [
        (row["_id"]["year"], row["_id"]["month"], row["total"], row["count"])
        for row in collection.aggregate(pipeline)
    ]
    rows.sort()
    return [
        MonthlyTotal(month=f"{year:04d}-{month:02d}", total=_money(total), count=count)
        for year, month, total, count in rows[-months:]
    ]
