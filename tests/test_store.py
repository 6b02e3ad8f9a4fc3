import threading
from datetime import date, datetime, timedelta, timezone

from conftest import ad_record, business_metric, utc
from funnelwire.logic.models import MetricsFilter
from funnelwire.store.partitioned import (
    DEFAULT_LIMIT,
    LookupStatus,
    PartitionedStore,
    filter_records,
    paginate,
)


def make_store():
    return PartitionedStore(lambda ad: ad.date, name="ads")


def test_append_then_range_scan_returns_everything():
    store = make_store()
    records = [ad_record(utc(2025, 1, 1) + timedelta(days=idx % 5, hours=idx)) for idx in range(40)]
    assert store.append(records) == 40
    scanned = store.range_scan(date(2025, 1, 1), date(2025, 1, 31))
    assert len(scanned) == 40
    assert len(store) == 40


def test_range_scan_is_inclusive_and_skips_missing_days():
    store = make_store()
    store.append([ad_record(utc(2025, 1, 1)), ad_record(utc(2025, 1, 3)), ad_record(utc(2025, 1, 5))])
    assert len(store.range_scan(date(2025, 1, 1), date(2025, 1, 3))) == 2
    assert store.range_scan(date(2025, 1, 6), date(2025, 1, 9)) == []
    assert store.days() == [date(2025, 1, 1), date(2025, 1, 3), date(2025, 1, 5)]


def test_partition_key_is_utc_day():
    store = make_store()
    late_evening = datetime(2025, 1, 1, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
    store.append([ad_record(late_evening)])
    assert store.days() == [date(2025, 1, 2)]


def test_append_is_additive():
    store = make_store()
    batch = [ad_record(utc(2025, 1, 1))]
    store.append(batch)
    store.append(batch)
    assert len(store.lookup_day(date(2025, 1, 1)).records) == 2


def test_lookup_day_variants():
    store = make_store()
    store.append([ad_record(utc(2025, 1, 1))])
    found = store.lookup_day(date(2025, 1, 1))
    assert found.found and found.status is LookupStatus.FOUND
    empty = store.lookup_day(date(2025, 1, 2))
    assert not empty.found and empty.status is LookupStatus.EMPTY
    assert empty.records == []


def test_query_applies_predicate():
    store = make_store()
    store.append([ad_record(utc(2025, 1, 1), channel="google_ads"), ad_record(utc(2025, 1, 1), channel="facebook_ads")])
    result = store.query(date(2025, 1, 1), date(2025, 1, 1), lambda ad: ad.channel == "google_ads")
    assert [ad.channel for ad in result] == ["google_ads"]


def test_filter_is_idempotent():
    records = [ad_record(utc(2025, 1, day), channel=channel) for day in (1, 2) for channel in ("a", "b")]
    predicate = lambda ad: ad.channel == "a"  # noqa: E731
    once = filter_records(records, predicate)
    assert filter_records(once, predicate) == once
    assert len(once) == 2


def test_empty_metrics_filter_matches_everything():
    assert MetricsFilter().matches(business_metric(channel="x"))
    assert not MetricsFilter(channel="y").matches(business_metric(channel="x"))


def test_paginate_defaults_and_has_more():
    records = [ad_record(utc(2025, 1, 1) + timedelta(hours=idx)) for idx in range(150)]
    page, total, has_more = paginate(records, 0, -5, lambda ad: ad.date)
    assert len(page) == DEFAULT_LIMIT
    assert total == 150
    assert has_more

    page, total, has_more = paginate(records, 100, 100, lambda ad: ad.date)
    assert len(page) == 50
    assert not has_more


def test_paginate_sorts_and_clamps():
    records = [ad_record(utc(2025, 1, day)) for day in (3, 1, 2)]
    page, total, has_more = paginate(records, 2, 0, lambda ad: ad.date)
    assert [ad.date.day for ad in page] == [1, 2]
    assert (total, has_more) == (3, True)

    page, total, has_more = paginate(records, 10, 50, lambda ad: ad.date)
    assert page == [] and total == 3 and not has_more


def test_concurrent_appends_do_not_lose_records():
    store = make_store()

    def writer(offset):
        store.append([ad_record(utc(2025, 1, 1 + (offset + idx) % 3)) for idx in range(200)])

    threads = [threading.Thread(target=writer, args=(idx,)) for idx in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(store.range_scan(date(2025, 1, 1), date(2025, 1, 3))) == 1600



def test_range_scan_up_to_last_representable_day():
    store = make_store()
    assert store.range_scan(date(9999, 12, 1), date.max) == []
    assert store.range_scan(date(2025, 1, 2), date(2025, 1, 1)) == []
