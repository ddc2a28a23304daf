import pytest

from adlib_media.db.postgres import PostgresAdStore, ensure_schema, upsert_competitor_ad


class FakeCursor:
    def __init__(self, con):
        self.con = con

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        if self.con.fail:
            raise RuntimeError("db down")
        self.con.executed.append((" ".join(sql.split()), params))


class FakeConnection:
    def __init__(self, fail=False):
        self.fail = fail
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


def test_ensure_schema_creates_table():
    con = FakeConnection()
    ensure_schema(con)
    assert "CREATE TABLE IF NOT EXISTS competitor_ads" in con.executed[0][0]
    assert con.commits == 1


def test_upsert_keeps_existing_media_on_conflict():
    con = FakeConnection()
    upsert_competitor_ad(con, ad_id="1", page_id="p", media_type="VIDEO", media_url="https://x/v.mp4")
    sql, params = con.executed[0]
    assert "ON CONFLICT (id) DO UPDATE" in sql
    assert "COALESCE(EXCLUDED.media_url, competitor_ads.media_url)" in sql
    assert params[0] == "1"
    assert params[5] == "VIDEO"
    assert con.commits == 1


def test_upsert_rolls_back_on_error():
    con = FakeConnection(fail=True)
    with pytest.raises(RuntimeError):
        upsert_competitor_ad(con, ad_id="1")
    assert con.rollbacks == 1
    assert con.commits == 0


def test_dry_run_writes_nothing():
    con = FakeConnection()
    PostgresAdStore(con, dry_run=True).upsert("1", {"media_url": "https://x"})
    assert con.executed == []


def test_store_rejects_unknown_fields():
    store = PostgresAdStore(FakeConnection())
    with pytest.raises(ValueError, match="bogus"):
        store.upsert("1", {"bogus": 1})


def test_store_upsert_and_close():
    con = FakeConnection()
    store = PostgresAdStore(con)
    store.upsert("7", {"page_id": "p", "resolver_version": "v1"})
    assert con.executed[0][1][0] == "7"
    assert con.executed[0][1][-1] == "v1"
    store.close()
    assert con.closed
