import asyncio

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from healthsathi.core.exceptions import DuplicateKey, NotFound, StoreUnavailable, TransactionFailed
from healthsathi.infrastructure.database import DB_VERSION, STORE_REPORTS, STORE_USERS, read_version
from healthsathi.infrastructure.repositories.document_store import SQLAlchemyDocumentStore


def user_record(**overrides):
    record = {"_id": "u1", "email": "a@x.com", "name": "Asha", "role": "patient"}
    record.update(overrides)
    return record


def report_record(**overrides):
    record = {
        "id": "r1",
        "userId": "u1",
        "targetDoctorId": "d1",
        "timestamp": 100,
        "status": "pending",
    }
    record.update(overrides)
    return record


async def test_get_missing_record_returns_none(store):
    assert await store.get(STORE_USERS, "nobody") is None


async def test_add_then_get_round_trips_user(store):
    record = user_record(bloodGroup="O+", age="34")
    await store.add(STORE_USERS, record)

    assert await store.get(STORE_USERS, "u1") == record


async def test_add_does_not_mutate_callers_record(store):
    record = report_record()
    await store.add(STORE_REPORTS, record)

    assert "updatedAt" not in record


async def test_add_duplicate_primary_key_raises(store):
    await store.add(STORE_USERS, user_record())

    with pytest.raises(DuplicateKey) as exc_info:
        await store.add(STORE_USERS, user_record(email="other@x.com"))

    assert exc_info.value.details == {"collection": STORE_USERS, "field": "_id"}


async def test_add_duplicate_email_raises_and_keeps_one_record(store):
    await store.add(STORE_USERS, user_record())

    with pytest.raises(DuplicateKey) as exc_info:
        await store.add(STORE_USERS, user_record(_id="u2", name="Impostor"))

    assert exc_info.value.details["field"] == "email"
    users = await store.query_all(STORE_USERS)
    assert [u["_id"] for u in users] == ["u1"]
    assert users[0]["name"] == "Asha"


async def test_add_without_primary_key_raises(store):
    with pytest.raises(TransactionFailed):
        await store.add(STORE_USERS, {"email": "a@x.com"})


async def test_put_fully_replaces_record(store):
    await store.add(STORE_USERS, user_record(phone="555"))
    await store.put(STORE_USERS, user_record(name="Asha K"))

    stored = await store.get(STORE_USERS, "u1")
    assert stored["name"] == "Asha K"
    assert "phone" not in stored


async def test_put_inserts_when_absent(store):
    await store.put(STORE_REPORTS, report_record())

    assert (await store.get(STORE_REPORTS, "r1"))["userId"] == "u1"


async def test_put_conflicting_email_raises(store):
    await store.add(STORE_USERS, user_record())
    await store.add(STORE_USERS, user_record(_id="u2", email="b@x.com"))

    with pytest.raises(DuplicateKey):
        await store.put(STORE_USERS, user_record(_id="u2", email="a@x.com"))

    assert (await store.get(STORE_USERS, "u2"))["email"] == "b@x.com"


async def test_merge_update_preserves_unmentioned_fields(store):
    await store.add(STORE_USERS, user_record(a=1, b=2))

    merged = await store.merge_update(STORE_USERS, "u1", {"b": 3})

    assert merged == user_record(a=1, b=3)
    assert await store.get(STORE_USERS, "u1") == user_record(a=1, b=3)


async def test_merge_update_missing_id_raises_and_leaves_store_unchanged(store):
    await store.add(STORE_USERS, user_record())

    with pytest.raises(NotFound) as exc_info:
        await store.merge_update(STORE_USERS, "ghost", {"name": "Ghost"})

    assert exc_info.value.details == {"collection": STORE_USERS, "id": "ghost"}
    assert await store.query_all(STORE_USERS) == [user_record()]


async def test_merge_update_keeps_primary_key(store):
    await store.add(STORE_USERS, user_record())

    merged = await store.merge_update(STORE_USERS, "u1", {"_id": "u9", "name": "Renamed"})

    assert merged["_id"] == "u1"
    assert await store.get(STORE_USERS, "u9") is None
    assert (await store.get(STORE_USERS, "u1"))["name"] == "Renamed"


async def test_merge_update_refreshes_secondary_indexes(store):
    await store.add(STORE_USERS, user_record())
    await store.merge_update(STORE_USERS, "u1", {"email": "new@x.com"})

    assert await store.get_by_index(STORE_USERS, "email", "a@x.com") is None
    assert (await store.get_by_index(STORE_USERS, "email", "new@x.com"))["_id"] == "u1"


async def test_reports_are_stamped_on_every_write(store):
    added = await store.add(STORE_REPORTS, report_record())
    assert added["updatedAt"]

    merged = await store.merge_update(STORE_REPORTS, "r1", {"status": "reviewed"})
    assert merged["updatedAt"] >= added["updatedAt"]

    stored = await store.get(STORE_REPORTS, "r1")
    assert stored == {**report_record(status="reviewed"), "updatedAt": merged["updatedAt"]}


async def test_users_are_not_stamped(store):
    await store.add(STORE_USERS, user_record())

    assert "updatedAt" not in await store.get(STORE_USERS, "u1")


async def test_query_by_index_returns_exact_matches(store):
    await store.add(STORE_REPORTS, report_record(id="r1", targetDoctorId="d1"))
    await store.add(STORE_REPORTS, report_record(id="r2", targetDoctorId="d2"))
    await store.add(STORE_REPORTS, report_record(id="r3", targetDoctorId="d1"))

    matches = await store.query_by_index(STORE_REPORTS, "targetDoctorId", "d1")

    assert sorted(r["id"] for r in matches) == ["r1", "r3"]
    assert await store.query_by_index(STORE_REPORTS, "targetDoctorId", "d3") == []


async def test_query_by_role_index(store):
    await store.add(STORE_USERS, user_record())
    await store.add(STORE_USERS, user_record(_id="d1", email="d@x.com", role="doctor"))

    doctors = await store.query_by_index(STORE_USERS, "role", "doctor")

    assert [d["_id"] for d in doctors] == ["d1"]


async def test_unknown_index_raises(store):
    with pytest.raises(TransactionFailed):
        await store.query_by_index(STORE_REPORTS, "status", "pending")


async def test_unknown_collection_raises(store):
    with pytest.raises(TransactionFailed):
        await store.get("appointments", "a1")


async def test_reopening_keeps_existing_data(db_url, store):
    await store.add(STORE_USERS, user_record())

    # Opening the same handle again is a no-op
    await store.open_connection()

    second = SQLAlchemyDocumentStore(db_url)
    async with second:
        assert await second.get(STORE_USERS, "u1") == user_record()
        with pytest.raises(DuplicateKey):
            await second.add(STORE_USERS, user_record(_id="u2"))


async def test_schema_version_is_recorded(db_url, store):
    engine = create_async_engine(db_url)
    try:
        async with engine.connect() as conn:
            assert await conn.run_sync(read_version) == DB_VERSION
    finally:
        await engine.dispose()


async def test_operations_reopen_lazily_after_close(store):
    await store.add(STORE_USERS, user_record())
    await store.close()
    assert not store.is_open

    assert await store.get(STORE_USERS, "u1") == user_record()
    assert store.is_open


async def test_open_failure_raises_store_unavailable(tmp_path):
    store = SQLAlchemyDocumentStore(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")

    with pytest.raises(StoreUnavailable):
        await store.open_connection()

    assert not store.is_open


async def test_concurrent_merge_updates_on_same_record_lose_nothing(store):
    await store.add(STORE_USERS, user_record())

    await asyncio.gather(
        *(store.merge_update(STORE_USERS, "u1", {f"field_{i}": i}) for i in range(20))
    )

    stored = await store.get(STORE_USERS, "u1")
    assert all(stored[f"field_{i}"] == i for i in range(20))


async def test_unindexable_lookup_values_match_nothing(store):
    await store.add(STORE_REPORTS, {"id": "orphan", "targetDoctorId": "d1", "timestamp": 1})
    await store.add(STORE_REPORTS, report_record(id="flagged", userId=True))

    assert await store.query_by_index(STORE_REPORTS, "userId", True) == []
    assert await store.query_by_index(STORE_REPORTS, "userId", None) == []
    assert await store.get_by_index(STORE_REPORTS, "userId", None) is None
    assert await store.get_by_index(STORE_REPORTS, "userId", {"x": 1}) is None


async def test_non_scalar_unique_value_is_rejected(store):
    with pytest.raises(TransactionFailed) as exc_info:
        await store.add(STORE_USERS, user_record(email={"x": 1}))

    assert exc_info.value.details == {"collection": STORE_USERS, "field": "email"}
    assert await store.query_all(STORE_USERS) == []
