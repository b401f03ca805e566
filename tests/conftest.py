import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("SEED_DEMO_DATA", "true")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ienerzy.config import Settings  # noqa: E402
from ienerzy.database import Database  # noqa: E402
from ienerzy.main import build_auth_service, create_app  # noqa: E402
from ienerzy.services.sms import SmsSendError  # noqa: E402
from ienerzy.services.users import IdentityDirectory  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-only-do-not-use-in-production"


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeSms:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def send_otp(self, to_phone: str, code: str) -> None:
        if self.fail:
            raise SmsSendError("Twilio is not configured")
        self.sent.append((to_phone, code))

    def last_code(self, phone: str) -> str:
        for to_phone, code in reversed(self.sent):
            if to_phone == phone:
                return code
        raise AssertionError(f"No SMS sent to {phone}")


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret=TEST_SECRET,
        access_token_expire_minutes=60 * 24,
        refresh_token_expire_days=7,
        otp_debug=False,
        seed_demo_data=True,
        twilio_account_sid="",
        twilio_auth_token="",
        twilio_phone_number="",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def directory(database):
    directory = IdentityDirectory(database)
    directory.seed_demo_data()
    return directory


@pytest.fixture
def fake_sms():
    return FakeSms()


@pytest.fixture
def app(settings, fake_sms):
    database = Database(settings.database_url)
    auth_service = build_auth_service(settings, database, sms=fake_sms)
    return create_app(settings, database, auth_service=auth_service)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def login(client, fake_sms, phone="9999999999", user_type="admin") -> dict:
    response = client.post("/auth/login", json={"phone": phone, "userType": user_type})
    assert response.status_code == 200, response.text
    code = fake_sms.last_code(phone)
    response = client.post(
        "/auth/verify-otp", json={"phone": phone, "otp": code, "userType": user_type}
    )
    assert response.status_code == 200, response.text
    return response.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
