"""Tests for the OTP store: overwrite on re-request, attempt cap, expiry."""

import pytest
from sqlalchemy import event, select

from ienerzy.database import Database
from ienerzy.models.schema.otp import OtpEntry
from ienerzy.services.otp import OtpError, OtpFailure, OtpStore
from ienerzy.services.users import STAFF, Identity

PHONE = "9999999999"
ADMIN = Identity(id=1, name="Admin User", phone=PHONE, role="admin")


@pytest.fixture
def otp_store(database, clock):
    return OtpStore(database, ttl_seconds=300, code_length=6, max_attempts=3, clock=clock)


def _stored_rows(database):
    with database.session_scope() as session:
        return session.execute(select(OtpEntry)).scalars().all()


class TestGenerateCode:
    def test_code_is_numeric_and_padded(self, otp_store):
        for _ in range(50):
            code = otp_store.generate_code()
            assert len(code) == 6
            assert code.isdigit()


class TestStore:
    def test_store_sets_expiry_from_ttl(self, otp_store, clock):
        record = otp_store.store(PHONE, "123456", ADMIN, STAFF)

        assert record.phone == PHONE
        assert (record.expires_at - clock.now).total_seconds() == 300

    def test_new_code_replaces_previous(self, otp_store, database):
        otp_store.store(PHONE, "111111", ADMIN, STAFF)
        otp_store.store(PHONE, "222222", ADMIN, STAFF)

        rows = _stored_rows(database)
        assert len(rows) == 1
        assert rows[0].code == "222222"

        with pytest.raises(OtpError) as excinfo:
            otp_store.verify(PHONE, "111111")
        assert excinfo.value.reason is OtpFailure.INVALID_CODE

        match = otp_store.verify(PHONE, "222222")
        assert match.identity == ADMIN

    def test_restore_resets_attempt_counter(self, otp_store):
        otp_store.store(PHONE, "111111", ADMIN, STAFF)
        for _ in range(3):
            with pytest.raises(OtpError):
                otp_store.verify(PHONE, "000000")

        otp_store.store(PHONE, "222222", ADMIN, STAFF)
        assert otp_store.verify(PHONE, "222222").identity_kind == STAFF

    def test_phone_is_normalized(self, otp_store):
        otp_store.store("999-999-9999", "123456", ADMIN, STAFF)
        assert otp_store.verify("(999) 999 9999", "123456").identity.id == 1


class TestVerify:
    def test_unknown_phone_is_not_found(self, otp_store):
        with pytest.raises(OtpError) as excinfo:
            otp_store.verify(PHONE, "123456")
        assert excinfo.value.reason is OtpFailure.NOT_FOUND

    def test_correct_code_succeeds_exactly_once(self, otp_store):
        otp_store.store(PHONE, "123456", ADMIN, STAFF)

        match = otp_store.verify(PHONE, "123456")
        assert match.identity == ADMIN
        assert match.identity_kind == STAFF

        with pytest.raises(OtpError) as excinfo:
            otp_store.verify(PHONE, "123456")
        assert excinfo.value.reason is OtpFailure.NOT_FOUND

    def test_wrong_code_increments_attempts(self, otp_store, database):
        otp_store.store(PHONE, "123456", ADMIN, STAFF)

        with pytest.raises(OtpError) as excinfo:
            otp_store.verify(PHONE, "654321")

        assert excinfo.value.reason is OtpFailure.INVALID_CODE
        assert _stored_rows(database)[0].attempts == 1

    def test_max_attempts_blocks_even_correct_code(self, otp_store, database):
        otp_store.store(PHONE, "123456", ADMIN, STAFF)
        for _ in range(3):
            with pytest.raises(OtpError) as excinfo:
                otp_store.verify(PHONE, "000000")
            assert excinfo.value.reason is OtpFailure.INVALID_CODE

        with pytest.raises(OtpError) as excinfo:
            otp_store.verify(PHONE, "123456")
        assert excinfo.value.reason is OtpFailure.MAX_ATTEMPTS_EXCEEDED
        assert _stored_rows(database) == []

        with pytest.raises(OtpError) as excinfo:
            otp_store.verify(PHONE, "123456")
        assert excinfo.value.reason is OtpFailure.NOT_FOUND

    def test_expired_code_is_not_found(self, otp_store, clock):
        otp_store.store(PHONE, "123456", ADMIN, STAFF)
        clock.advance(301)

        with pytest.raises(OtpError) as excinfo:
            otp_store.verify(PHONE, "123456")
        assert excinfo.value.reason is OtpFailure.NOT_FOUND

    def test_code_redeemed_by_another_request_mid_verify_fails(self, tmp_path, clock):
        database = Database(f"sqlite:///{tmp_path / 'otp.db'}")
        database.init_db()
        store = OtpStore(database, ttl_seconds=300, code_length=6, max_attempts=3, clock=clock)
        store.store(PHONE, "123456", ADMIN, STAFF)
        results = []
        raced = []

        # A competing verify lands between this request's read and its delete.
        def redeem_first(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("DELETE FROM otp_storage") and not raced:
                raced.append(True)
                results.append(store.verify(PHONE, "123456"))

        event.listen(database.engine, "before_cursor_execute", redeem_first)
        try:
            with pytest.raises(OtpError) as excinfo:
                store.verify(PHONE, "123456")
        finally:
            event.remove(database.engine, "before_cursor_execute", redeem_first)
            database.dispose()

        assert results[0].identity == ADMIN
        assert excinfo.value.reason is OtpFailure.NOT_FOUND


class TestSweep:
    def test_sweep_removes_only_expired(self, otp_store, clock, database):
        otp_store.store(PHONE, "123456", ADMIN, STAFF)
        clock.advance(200)
        other = Identity(id=2, name="Dealer One", phone="8888888888", role="dealer")
        otp_store.store("8888888888", "654321", other, STAFF)
        clock.advance(150)

        assert otp_store.sweep_expired() == 1
        assert [row.phone for row in _stored_rows(database)] == ["8888888888"]
