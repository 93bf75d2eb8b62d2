from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from threatlens.services.storage import SecurityStorage


def failing_storage():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    session.get.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    return SecurityStorage(lambda: session), session


def test_empty_database(storage):
    assert storage.load_whitelist() == []
    assert storage.load_stats() is None
    assert storage.load_settings() is None


def test_whitelist_order_preserved(storage):
    assert storage.save_whitelist(["b.com", "a.com", "c.com"])
    assert storage.load_whitelist() == ["b.com", "a.com", "c.com"]

    assert storage.save_whitelist(["a.com"])
    assert storage.load_whitelist() == ["a.com"]


def test_stats_upsert(storage):
    storage.save_stats({'urls_analyzed': 5, 'threats_blocked': 2, 'last_updated': 1000})
    storage.save_stats({'urls_analyzed': 7, 'threats_blocked': 3, 'last_updated': 2000})

    stats = storage.load_stats()
    assert stats['urls_analyzed'] == 7
    assert stats['threats_blocked'] == 3
    assert stats['phishing_detected'] == 0
    assert stats['last_updated'] == 2000


def test_settings_payload(storage):
    payload = {'features': {'url_analysis': False}}
    assert storage.save_settings(payload)
    assert storage.load_settings() == payload


def test_read_failures_fall_back():
    storage, session = failing_storage()

    assert storage.load_whitelist() == []
    assert storage.load_stats() is None
    assert storage.load_settings() is None
    assert session.close.call_count == 3


def test_write_failures_roll_back():
    storage, session = failing_storage()

    assert storage.save_whitelist(["example.com"]) is False
    assert storage.save_stats({'urls_analyzed': 1}) is False
    assert storage.save_settings({}) is False
    assert session.rollback.call_count == 3
    session.commit.assert_not_called()


def test_privacy_counters_roundtrip(storage):
    storage.save_stats({'urls_cleaned': 4, 'trackers_blocked': {'analytics': 3, 'advertising': 1}})

    stats = storage.load_stats()
    assert stats['urls_cleaned'] == 4
    assert stats['trackers_blocked'] == {'analytics': 3, 'advertising': 1}


def test_legacy_stats_row_has_empty_tracker_counts(storage):
    storage.save_stats({'urls_analyzed': 2})
    assert storage.load_stats()['trackers_blocked'] == {}
