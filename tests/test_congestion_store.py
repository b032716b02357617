from cityflux.models.traffic import CongestionLevel
from cityflux.services.congestion_store import CongestionStore

from tests.conftest import NOW_MS

MINUTE_MS = 60 * 1000
BUCKET = "1,000_103,000"


def _bucket(rtdb, key, level, age_ms):
    rtdb.data.setdefault("traffic", {})[key] = {
        "congestionLevel": level,
        "lastUpdated": NOW_MS - age_ms,
        "center": {"lat": 1.0, "lng": 103.0},
    }


def test_update_bucket_upserts_level_timestamp_and_center(congestion, fake_rtdb):
    bucket_id, alert = congestion.update_bucket(1.0001, 103.0002, CongestionLevel.MEDIUM)

    assert bucket_id == BUCKET
    assert alert is None
    assert fake_rtdb.data["traffic"][BUCKET] == {
        "congestionLevel": "MEDIUM",
        "lastUpdated": NOW_MS,
        "center": {"lat": 1.0001, "lng": 103.0002},
    }


def test_update_bucket_high_alerts_police_and_citizens(seed_users, congestion, messenger):
    bucket_id, alert = congestion.update_bucket(1.0, 103.0, CongestionLevel.HIGH)

    assert alert.success == 3
    [message] = messenger.multicasts
    assert sorted(message.tokens) == ["tok-citizen-1", "tok-citizen-2", "tok-police-1"]
    assert message.data == {"type": "congestion", "bucket": bucket_id}


def test_update_bucket_retry_restamps(seed_users, fake_rtdb, dispatcher):
    clock = iter([NOW_MS, NOW_MS + 1000])
    store = CongestionStore(rtdb=fake_rtdb, dispatcher=dispatcher, precision=3, decay_minutes=30,
                            clock=lambda: next(clock))

    store.update_bucket(1.0, 103.0, CongestionLevel.HIGH)
    store.update_bucket(1.0, 103.0, CongestionLevel.HIGH)

    node = fake_rtdb.data["traffic"][BUCKET]
    assert node["congestionLevel"] == "HIGH"
    assert node["lastUpdated"] == NOW_MS + 1000


def test_get_and_list_buckets(congestion, fake_rtdb):
    _bucket(fake_rtdb, "b", "HIGH", 0)
    _bucket(fake_rtdb, "a", "bogus", 0)

    assert congestion.get_bucket("missing") is None
    bucket = congestion.get_bucket("b")
    assert bucket.congestionLevel == CongestionLevel.HIGH
    assert bucket.center.lat == 1.0
    assert [b.bucket_id for b in congestion.list_buckets()] == ["a", "b"]
    assert congestion.list_buckets()[0].congestionLevel == CongestionLevel.LOW


def test_decay_boundary_is_strict(congestion, fake_rtdb):
    _bucket(fake_rtdb, "at-threshold", "HIGH", 30 * MINUTE_MS)
    _bucket(fake_rtdb, "just-past", "HIGH", 30 * MINUTE_MS + 1)

    summary = congestion.decay_sweep()

    assert fake_rtdb.data["traffic"]["at-threshold"]["congestionLevel"] == "HIGH"
    assert fake_rtdb.data["traffic"]["just-past"]["congestionLevel"] == "MEDIUM"
    assert summary.decayed == {"just-past": CongestionLevel.MEDIUM}


def test_decay_steps_one_rank_per_sweep(congestion, fake_rtdb):
    _bucket(fake_rtdb, "ancient", "HIGH", 24 * 60 * MINUTE_MS)

    congestion.decay_sweep()
    assert fake_rtdb.data["traffic"]["ancient"]["congestionLevel"] == "MEDIUM"

    congestion.decay_sweep()
    assert fake_rtdb.data["traffic"]["ancient"]["congestionLevel"] == "LOW"

    congestion.decay_sweep()
    assert fake_rtdb.data["traffic"]["ancient"]["congestionLevel"] == "LOW"


def test_decay_writes_only_the_level(congestion, fake_rtdb):
    _bucket(fake_rtdb, "stale", "MEDIUM", 45 * MINUTE_MS)

    congestion.decay_sweep()

    assert fake_rtdb.writes == [("update", "traffic/stale", {"congestionLevel": "LOW"})]
    assert fake_rtdb.data["traffic"]["stale"]["lastUpdated"] == NOW_MS - 45 * MINUTE_MS


def test_decay_skips_buckets_already_low(congestion, fake_rtdb):
    _bucket(fake_rtdb, "cold", "LOW", 120 * MINUTE_MS)

    summary = congestion.decay_sweep()

    assert fake_rtdb.writes == []
    assert summary.scanned == 1
    assert summary.decayed == {}


def test_decay_continues_after_a_failed_bucket(congestion, fake_rtdb):
    _bucket(fake_rtdb, "broken", "HIGH", 60 * MINUTE_MS)
    _bucket(fake_rtdb, "fine", "HIGH", 60 * MINUTE_MS)
    fake_rtdb.failing_paths.add("traffic/broken")

    summary = congestion.decay_sweep()

    assert summary.failed == ["broken"]
    assert summary.decayed == {"fine": CongestionLevel.MEDIUM}
    assert fake_rtdb.data["traffic"]["broken"]["congestionLevel"] == "HIGH"


def test_decay_on_empty_store(congestion):
    summary = congestion.decay_sweep()

    assert summary.scanned == 0
    assert summary.decayed == {}
