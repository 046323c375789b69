import pytest
from pydantic import ValidationError

from ticketgate.core.config import Settings, settings
from ticketgate.db.session import normalize_database_url


def test_list_settings_accept_commas_and_json():
    s = Settings(ADMIN_EMAILS='["Boss@Example.com", " ops@example.com "]', CORS_ORIGINS="http://localhost:5173")
    assert s.admin_emails == ["boss@example.com", "ops@example.com"]
    assert set(s.cors_origins) == {"http://localhost:5173", "http://127.0.0.1:5173"}


def test_concert_tiers_parse_and_default():
    assert Settings(CONCERT_TIERS="VIP:1500:20, bad-entry, gold:x:1").concert_tiers == [("vip", 1500.0, 20)]
    assert [t[0] for t in Settings(CONCERT_TIERS="").concert_tiers] == ["diamond", "gold", "silver"]


def test_settings_are_frozen():
    with pytest.raises(ValidationError):
        settings.lottery_lock_ttl_seconds = 1


def test_lock_ttl_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(LOTTERY_LOCK_TTL_SECONDS=0)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("sqlite:///x.db", "sqlite:///x.db"),
        ("postgresql+psycopg://u@h/db", "postgresql+psycopg://u@h/db"),
    ],
)
def test_normalize_database_url_leaves_explicit_drivers(url, expected):
    assert normalize_database_url(url) == expected
