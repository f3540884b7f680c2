from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from errors import NotFoundError, ValidationError
from helpers import day, tx_fields
from transactions import (
    create_transaction,
    delete_transaction,
    get_transaction,
    list_transactions,
    recent_transactions,
    update_transaction,
)


# ---- create ------------------------------------------------------------------


def test_create_returns_stored_record(collection, owner_id):
    tx = create_transaction(collection, owner_id, tx_fields(amount=12.5, description="  Milk and bread  ", date=day(3)))

    assert ObjectId.is_valid(tx.id)
    assert tx.amount == 12.5
    assert tx.description == "Milk and bread"
    assert tx.date == day(3)
    assert tx.created_at is not None and tx.updated_at is not None

    stored = collection.find_one({"_id": ObjectId(tx.id)})
    assert stored["user_id"] == owner_id
    assert stored["category"] == "Groceries"
    assert stored["type"] == "expense"


def test_create_defaults_date_to_now(collection, owner_id):
    before = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=1)
    tx = create_transaction(collection, owner_id, tx_fields())
    after = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(seconds=1)
    assert before <= tx.date <= after


def test_create_normalizes_aware_dates_to_utc(collection, owner_id):
    aware = datetime(2024, 5, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    tx = create_transaction(collection, owner_id, tx_fields(date=aware))
    assert tx.date == datetime(2024, 5, 1, 8, 0)


def test_zero_amount_is_allowed(collection, owner_id):
    assert create_transaction(collection, owner_id, tx_fields(amount=0)).amount == 0


@pytest.mark.parametrize(
    "override",
    [
        {"amount": -1},
        {"category": "Rent"},
        {"type": "transfer"},
        {"description": "x" * 201},
        {"description": "   "},
        {"amount": "lots"},
    ],
)
def test_create_rejects_invalid_fields(collection, owner_id, override):
    fields = {**tx_fields(), **override}
    with pytest.raises(ValidationError):
        create_transaction(collection, owner_id, fields)
    assert collection.count_documents({}) == 0


@pytest.mark.parametrize("missing", ["amount", "description", "category", "type"])
def test_create_requires_fields(collection, owner_id, missing):
    fields = tx_fields()
    del fields[missing]
    with pytest.raises(ValidationError) as excinfo:
        create_transaction(collection, owner_id, fields)
    assert missing in str(excinfo.value)


def test_description_at_limit_is_accepted(collection, owner_id):
    tx = create_transaction(collection, owner_id, tx_fields(description="y" * 200))
    assert len(tx.description) == 200


# ---- list / recent -----------------------------------------------------------


def test_list_is_scoped_to_owner(collection, owner_id, other_owner_id):
    mine = create_transaction(collection, owner_id, tx_fields(description="mine"))
    theirs = create_transaction(collection, other_owner_id, tx_fields(description="theirs"))

    my_ids = {t.id for t in list_transactions(collection, owner_id).transactions}
    their_ids = {t.id for t in list_transactions(collection, other_owner_id).transactions}

    assert my_ids == {mine.id}
    assert their_ids == {theirs.id}


def test_pagination_over_25_transactions(collection, owner_id):
    for n in range(25):
        create_transaction(collection, owner_id, tx_fields(amount=n, date=day(n)))

    first = list_transactions(collection, owner_id, page=1, limit=10)
    assert first.total == 25
    assert first.total_pages == 3
    assert [t.date for t in first.transactions] == [day(n) for n in range(24, 14, -1)]

    last = list_transactions(collection, owner_id, page=3, limit=10)
    assert last.current_page == 3
    assert [t.date for t in last.transactions] == [day(n) for n in range(4, -1, -1)]


def test_page_past_the_end_is_empty(collection, owner_id):
    create_transaction(collection, owner_id, tx_fields())
    page = list_transactions(collection, owner_id, page=5, limit=10)
    assert page.transactions == []
    assert page.total == 1
    assert page.total_pages == 1


def test_list_without_transactions(collection, owner_id):
    page = list_transactions(collection, owner_id)
    assert page.total == 0
    assert page.total_pages == 0
    assert page.transactions == []


@pytest.mark.parametrize("page,limit", [(0, 10), (-1, 10), (1, 0), (1, -5), (1, 101)])
def test_list_rejects_out_of_range_paging(collection, owner_id, page, limit):
    with pytest.raises(ValidationError):
        list_transactions(collection, owner_id, page=page, limit=limit)


def test_list_filters_by_category_and_type(collection, owner_id):
    create_transaction(collection, owner_id, tx_fields(category="Groceries"))
    create_transaction(collection, owner_id, tx_fields(category="Utilities"))
    create_transaction(collection, owner_id, tx_fields(category="Income", tx_type="income", amount=500))

    groceries = list_transactions(collection, owner_id, category="Groceries")
    assert [t.category for t in groceries.transactions] == ["Groceries"]

    income = list_transactions(collection, owner_id, tx_type="income")
    assert [t.amount for t in income.transactions] == [500]

    assert list_transactions(collection, owner_id, category="Utilities", tx_type="income").total == 0


def test_list_filters_by_inclusive_date_range(collection, owner_id, other_owner_id):
    for n in range(5):
        create_transaction(collection, owner_id, tx_fields(amount=n, date=day(n)))
    create_transaction(collection, other_owner_id, tx_fields(date=day(2)))

    middle = list_transactions(collection, owner_id, start=day(1), end=day(3))
    assert middle.total == 3
    assert [t.date for t in middle.transactions] == [day(3), day(2), day(1)]

    assert list_transactions(collection, owner_id, start=day(4)).total == 1
    assert list_transactions(collection, owner_id, end=day(0)).total == 1

    with pytest.raises(ValidationError):
        list_transactions(collection, owner_id, start=day(3), end=day(1))


def test_list_rejects_unknown_filters(collection, owner_id):
    with pytest.raises(ValidationError):
        list_transactions(collection, owner_id, category="Rent")
    with pytest.raises(ValidationError):
        list_transactions(collection, owner_id, tx_type="refund")


def test_recent_returns_latest_five(collection, owner_id, other_owner_id):
    for n in range(8):
        create_transaction(collection, owner_id, tx_fields(date=day(n)))
    create_transaction(collection, other_owner_id, tx_fields(date=day(100)))

    recent = recent_transactions(collection, owner_id)
    assert [t.date for t in recent] == [day(n) for n in range(7, 2, -1)]


def test_get_transaction_checks_owner(collection, owner_id, other_owner_id):
    tx = create_transaction(collection, owner_id, tx_fields())
    assert get_transaction(collection, owner_id, tx.id).id == tx.id
    with pytest.raises(NotFoundError):
        get_transaction(collection, other_owner_id, tx.id)


# ---- update ------------------------------------------------------------------


def test_update_replaces_only_supplied_fields(collection, owner_id):
    tx = create_transaction(collection, owner_id, tx_fields(amount=10, date=day(1)))

    updated = update_transaction(collection, owner_id, tx.id, {"amount": 25, "description": " Bigger shop "})

    assert updated.amount == 25
    assert updated.description == "Bigger shop"
    assert updated.category == "Groceries"
    assert updated.date == day(1)


def test_update_ignores_non_editable_fields(collection, owner_id, other_owner_id):
    tx = create_transaction(collection, owner_id, tx_fields())
    update_transaction(collection, owner_id, tx.id, {"amount": 3, "user_id": other_owner_id})
    assert collection.find_one({"_id": ObjectId(tx.id)})["user_id"] == owner_id


def test_update_of_another_owners_transaction_is_not_found(collection, owner_id, other_owner_id):
    theirs = create_transaction(collection, other_owner_id, tx_fields(amount=10))

    with pytest.raises(NotFoundError):
        update_transaction(collection, owner_id, theirs.id, {"amount": 999})

    assert collection.find_one({"_id": ObjectId(theirs.id)})["amount"] == 10


def test_update_unknown_or_malformed_id_is_not_found(collection, owner_id):
    with pytest.raises(NotFoundError):
        update_transaction(collection, owner_id, str(ObjectId()), {"amount": 1})
    with pytest.raises(NotFoundError):
        update_transaction(collection, owner_id, "not-an-id", {"amount": 1})


@pytest.mark.parametrize(
    "fields",
    [{"amount": -5}, {"category": "Rent"}, {"amount": None}, {}, {"colour": "red"}],
)
def test_update_rejects_invalid_changes(collection, owner_id, fields):
    tx = create_transaction(collection, owner_id, tx_fields(amount=10))
    with pytest.raises(ValidationError):
        update_transaction(collection, owner_id, tx.id, fields)
    assert collection.find_one({"_id": ObjectId(tx.id)})["amount"] == 10


# ---- delete ------------------------------------------------------------------


def test_delete_removes_owned_transaction(collection, owner_id):
    tx = create_transaction(collection, owner_id, tx_fields())
    delete_transaction(collection, owner_id, tx.id)
    assert collection.count_documents({}) == 0


def test_delete_missing_id_is_not_found_every_time(collection, owner_id):
    tx = create_transaction(collection, owner_id, tx_fields())
    delete_transaction(collection, owner_id, tx.id)

    for _ in range(2):
        with pytest.raises(NotFoundError):
            delete_transaction(collection, owner_id, tx.id)


def test_delete_of_another_owners_transaction_is_not_found(collection, owner_id, other_owner_id):
    theirs = create_transaction(collection, other_owner_id, tx_fields())
    with pytest.raises(NotFoundError):
        delete_transaction(collection, owner_id, theirs.id)
    assert collection.count_documents({"user_id": other_owner_id}) == 1
