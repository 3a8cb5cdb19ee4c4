"""Shared test fixtures."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from liveclass.config import Settings
from liveclass.services.period_clock import DEFAULT_BELL_SCHEDULE, PeriodClock
from liveclass.services.schedule_resolver import ScheduleEntry, StaticScheduleResolver
from liveclass.services.token_registry import TokenRegistry
from liveclass.services.token_store import InMemoryTokenStore


@pytest.fixture
def ec_key_pair() -> tuple[str, str]:
    """A throwaway P-256 key pair as (private PEM, public PEM)."""
    key = ec.generate_private_key(ec.SECP256R1())
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture
def settings(ec_key_pair) -> Settings:
    return Settings(
        app_env="development",
        debug=True,
        token_store_backend="memory",
        apns_private_key=ec_key_pair[0],
        apns_key_id="ABC123DEFG",
        apns_team_id="TEAM456789",
        apns_bundle_id="com.helgisnw.yangcheonlife",
        schedule_api_url="",
    )


@pytest.fixture
def store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def registry(store) -> TokenRegistry:
    return TokenRegistry(store)


@pytest.fixture
def clock() -> PeriodClock:
    return PeriodClock(DEFAULT_BELL_SCHEDULE, timezone_name="Asia/Seoul")


@pytest.fixture
def timetable() -> StaticScheduleResolver:
    """Grade 1 class 1: a Monday timetable with all seven periods."""
    monday = [
        ScheduleEntry(1, "Korean", "1-1"),
        ScheduleEntry(2, "English", "1-1"),
        ScheduleEntry(3, "Mathematics", "Math Lab"),
        ScheduleEntry(4, "Physics", "Science 2"),
        ScheduleEntry(5, "History", "1-1"),
        ScheduleEntry(6, "Music", "Music Room"),
        ScheduleEntry(7, "P.E.", "Gym"),
    ]
    return StaticScheduleResolver({(1, 1): [monday, [], [], [], []]})
