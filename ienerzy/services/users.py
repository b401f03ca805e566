from dataclasses import asdict, dataclass
import logging
import re

from sqlalchemy import select

from ienerzy.database import utcnow
from ienerzy.models.schema.consumer import ConsumerEntry
from ienerzy.models.schema.user import STAFF_ROLES, UserEntry

LOGGER = logging.getLogger(__name__)

STAFF = "staff"
CONSUMER = "consumer"

DEMO_STAFF = (
    ("Admin User", "9999999999", "admin"),
    ("Dealer One", "8888888888", "dealer"),
    ("NBFC Partner", "7777777777", "nbfc"),
)
DEMO_CONSUMERS = (
    ("John Doe", "1111111111", "verified"),
    ("Jane Smith", "2222222222", "verified"),
    ("Consumer Demo", "7777777777", "verified"),
)


def normalize_phone(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


@dataclass(frozen=True)
class Identity:
    id: int
    name: str
    phone: str
    role: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict, *, phone: str = "", role: str = "") -> "Identity":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "Unknown User",
            phone=data.get("phone") or phone,
            role=data.get("role") or role,
        )


@dataclass(frozen=True)
class ConsumerRecord:
    id: int
    name: str
    phone: str
    kyc_status: str
    dealer_id: int | None


def _staff_identity(entry: UserEntry) -> Identity:
    return Identity(id=entry.id, name=entry.name, phone=entry.phone, role=entry.role)


def _consumer_identity(entry: ConsumerEntry) -> Identity:
    return Identity(id=entry.id, name=entry.name, phone=entry.phone, role=CONSUMER)


class IdentityDirectory:
    """Read side of the staff and consumer tables used by the login flow."""

    def __init__(self, database) -> None:
        self._database = database

    def find_staff(self, phone: str) -> Identity | None:
        with self._database.session_scope() as session:
            entry = session.execute(
                select(UserEntry).where(UserEntry.phone == normalize_phone(phone))
            ).scalar_one_or_none()
            return _staff_identity(entry) if entry else None

    def find_consumer(self, phone: str) -> Identity | None:
        with self._database.session_scope() as session:
            entry = session.execute(
                select(ConsumerEntry).where(
                    ConsumerEntry.phone == normalize_phone(phone)
                )
            ).scalar_one_or_none()
            return _consumer_identity(entry) if entry else None

    def get_identity(self, user_id: int, kind: str) -> Identity | None:
        model = ConsumerEntry if kind == CONSUMER else UserEntry
        with self._database.session_scope() as session:
            entry = session.get(model, user_id)
            if entry is None:
                return None
            if kind == CONSUMER:
                return _consumer_identity(entry)
            return _staff_identity(entry)

    def get_consumer(self, consumer_id: int) -> ConsumerRecord | None:
        with self._database.session_scope() as session:
            entry = session.get(ConsumerEntry, consumer_id)
            if entry is None:
                return None
            return ConsumerRecord(
                id=entry.id,
                name=entry.name,
                phone=entry.phone,
                kyc_status=entry.kyc_status,
                dealer_id=entry.dealer_id,
            )

    def create_staff(self, name: str, phone: str, role: str) -> Identity:
        if role not in STAFF_ROLES:
            raise ValueError(f"Unknown staff role '{role}'")
        with self._database.session_scope() as session:
            entry = UserEntry(
                name=name, phone=normalize_phone(phone), role=role, created_at=utcnow()
            )
            session.add(entry)
            session.flush()
            return _staff_identity(entry)

    def create_consumer(
        self,
        name: str,
        phone: str,
        *,
        dealer_id: int | None = None,
        kyc_status: str = "pending",
    ) -> Identity:
        with self._database.session_scope() as session:
            entry = ConsumerEntry(
                name=name,
                phone=normalize_phone(phone),
                kyc_status=kyc_status,
                dealer_id=dealer_id,
                created_at=utcnow(),
            )
            session.add(entry)
            session.flush()
            return _consumer_identity(entry)

    def seed_demo_data(self) -> None:
        created = 0
        for name, phone, role in DEMO_STAFF:
            if self.find_staff(phone) is None:
                self.create_staff(name, phone, role)
                created += 1
        dealer = self.find_staff("8888888888")
        dealer_id = dealer.id if dealer else None
        for name, phone, kyc_status in DEMO_CONSUMERS:
            if self.find_consumer(phone) is None:
                self.create_consumer(
                    name, phone, dealer_id=dealer_id, kyc_status=kyc_status
                )
                created += 1
        if created:
            LOGGER.info("Seeded %s demo identities", created)
