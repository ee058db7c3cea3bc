import pytest

from db_utils import database


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DATABASE_MAIN_NAME", str(tmp_path / "nested" / "settings.db"))
    database.initialize_database()
    return database


def test_initialize_creates_data_directory(db, tmp_path):
    assert (tmp_path / "nested" / "settings.db").exists()


def test_unknown_guild_has_no_settings(db):
    assert db.get_guild_settings(1) is None


def test_log_channel_round_trip(db):
    assert db.update_setting(1, "log_channel_id", 555)
    assert db.get_guild_settings(1)["log_channel_id"] == 555

    db.update_setting(1, "log_channel_id", None)
    assert db.get_guild_settings(1)["log_channel_id"] is None


def test_update_setting_rejects_unknown_keys(db):
    with pytest.raises(ValueError):
        db.update_setting(1, "guild_id; DROP TABLE settings", 1)


def test_monitored_forums_keep_insertion_order_and_reject_duplicates(db):
    assert db.add_monitored_forum(1, 300)
    assert db.add_monitored_forum(1, 100)
    assert not db.add_monitored_forum(1, 300)
    assert db.add_monitored_forum(2, 300)

    assert db.get_monitored_forums(1) == [300, 100]
    assert db.get_monitored_forums(2) == [300]


def test_remove_monitored_forum(db):
    db.add_monitored_forum(1, 300)

    assert db.remove_monitored_forum(1, 300)
    assert not db.remove_monitored_forum(1, 300)
    assert db.get_monitored_forums(1) == []
