"""Integration tests for SessionManager against a scripted transport.

Covers authentication, credential persistence ordering, disconnect
classification, reconnect backoff and shutdown.
"""

import asyncio
import json

import pytest

from conftest import HOLD, PHONE_NUMBER, FakeTransport, make_credentials_update, make_voice_event
from voxrelay.lib.exceptions import (
    DeliveryError,
    PersistenceError,
    StagingError,
    TerminalAuthError,
    TransientNetworkError,
)
from voxrelay.models.events import ConnectionEvent
from voxrelay.models.session import ConnectionState, Credentials
from voxrelay.services.session.manager import SessionManager


def stored_credentials() -> Credentials:
    credentials = Credentials()
    credentials.apply(make_credentials_update())
    return credentials


@pytest.fixture
def make_manager(credential_store, connection_config, presenter):
    def _make(transport, config=None):
        return SessionManager(
            transport=transport,
            store=credential_store,
            config=config or connection_config,
            presenter=presenter,
        )

    return _make


class TestAuthentication:
    """First connection and credential reuse."""

    @pytest.mark.asyncio
    async def test_qr_login_persists_credentials_and_opens(
        self, make_manager, credential_store, presenter, wait_until
    ):
        transport = FakeTransport([[
            ConnectionEvent.qr("QR-1"),
            ConnectionEvent.qr("QR-2"),
            make_credentials_update(),
            ConnectionEvent.opened(),
            HOLD,
        ]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        assert credential_store.read().is_usable
        assert credential_store.last_connected() is not None
        presenter.show_qr.assert_called_once_with("QR-1")
        presenter.show_connected.assert_called_once()
        assert transport.pairing_requests == []

        await manager.stop()
        assert manager.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_credentials_persisted_before_next_event(
        self, make_manager, credential_store, wait_until
    ):
        seen = []
        transport = FakeTransport([[
            make_credentials_update(),
            lambda: seen.append(credential_store.read()),
            ConnectionEvent.opened(),
            HOLD,
        ]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        assert len(seen) == 1
        assert seen[0].is_usable
        assert seen[0].get_keys("pre-key", ["1"]) == {
            "1": {"public": "cHViMQ==", "private": "cHJpdjE="}
        }

        await manager.stop()

    @pytest.mark.asyncio
    async def test_stored_credentials_are_reused(
        self, make_manager, credential_store, connection_config, presenter, wait_until
    ):
        credential_store.write(stored_credentials())
        config = connection_config.model_copy(update={"auth_method": "PAIRING_CODE"})
        transport = FakeTransport([[ConnectionEvent.connecting(), ConnectionEvent.opened(), HOLD]])
        manager = make_manager(transport, config)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        credentials, options = transport.connect_calls[0]
        assert credentials.is_usable
        assert options.print_qr is False
        assert transport.pairing_requests == []
        presenter.show_qr.assert_not_called()

        await manager.stop()

    @pytest.mark.asyncio
    async def test_incomplete_stored_credentials_require_login(
        self, make_manager, credential_store, wait_until
    ):
        credential_store.write(Credentials(identity={"name": "no id"}, registered=True))
        transport = FakeTransport()
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: len(transport.connect_calls) == 1)

        credentials, _ = transport.connect_calls[0]
        assert credentials == Credentials()

        await manager.stop()

    @pytest.mark.asyncio
    async def test_wrongly_shaped_stored_identity_requires_login(
        self, make_manager, credential_store, presenter, wait_until
    ):
        credential_store.credentials_path.write_text(
            json.dumps({"creds": {"me": "abc", "registered": True}, "keys": {}}),
            encoding="utf-8",
        )
        transport = FakeTransport([[ConnectionEvent.qr("QR-1"), HOLD]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.AUTHENTICATING)

        credentials, _ = transport.connect_calls[0]
        assert credentials == Credentials()
        presenter.show_qr.assert_called_once_with("QR-1")

        await manager.stop()


class TestPairingCode:
    """Pairing-code authentication through the manager."""

    @pytest.fixture
    def pairing_config(self, connection_config):
        return connection_config.model_copy(update={"auth_method": "PAIRING_CODE"})

    @pytest.mark.asyncio
    async def test_connecting_burst_requests_one_code(
        self, make_manager, pairing_config, presenter, wait_until
    ):
        transport = FakeTransport([[
            ConnectionEvent.connecting(),
            ConnectionEvent.connecting(),
            ConnectionEvent.connecting(),
            HOLD,
        ]])
        manager = make_manager(transport, pairing_config)

        await manager.start()
        await wait_until(lambda: presenter.show_pairing_code.called)
        await asyncio.sleep(0.05)

        assert transport.pairing_requests == [PHONE_NUMBER]
        presenter.show_pairing_code.assert_called_once_with("ABCD1234", 5.0)
        presenter.show_qr.assert_not_called()
        assert manager.state == ConnectionState.AUTHENTICATING

        await manager.stop()

    @pytest.mark.asyncio
    async def test_expired_code_is_requested_again(
        self, make_manager, pairing_config, wait_until
    ):
        config = pairing_config.model_copy(update={"pairing_code_expiry": 0.05})
        transport = FakeTransport([[ConnectionEvent.connecting(), HOLD]])
        manager = make_manager(transport, config)

        await manager.start()
        await wait_until(lambda: len(transport.pairing_requests) >= 2)

        await manager.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_code(self, make_manager, pairing_config, wait_until):
        transport = FakeTransport([[ConnectionEvent.connecting(), HOLD]])
        manager = make_manager(transport, pairing_config)

        await manager.start()
        await wait_until(lambda: transport.pairing_requests)
        assert manager.pairing.pending

        await manager.stop()

        assert not manager.pairing.pending

    @pytest.mark.asyncio
    async def test_open_consumes_code(self, make_manager, pairing_config, wait_until):
        transport = FakeTransport([[
            ConnectionEvent.connecting(),
            make_credentials_update(),
            ConnectionEvent.opened(),
            HOLD,
        ]])
        manager = make_manager(transport, pairing_config)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        assert not manager.pairing.pending

        await manager.stop()


class TestDisconnects:
    """Disconnect classification and reconnect policy."""

    @pytest.mark.asyncio
    async def test_transient_disconnect_reconnects_and_open_resets_count(
        self, make_manager, wait_until
    ):
        transport = FakeTransport([
            [ConnectionEvent.opened(), ConnectionEvent.closed(500, "Stream Errored")],
            [ConnectionEvent.closed(503, "Service Unavailable")],
            [ConnectionEvent.opened(), HOLD],
        ])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(
            lambda: len(transport.connect_calls) == 3 and manager.state == ConnectionState.OPEN
        )

        assert manager.session.retry_count == 0
        assert manager.session.last_error is None

        await manager.stop()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, make_manager, presenter):
        transport = FakeTransport([[ConnectionEvent.closed(500)] for _ in range(5)])
        manager = make_manager(transport)

        await manager.start()
        error = await asyncio.wait_for(manager.wait_closed(), timeout=2.0)

        assert isinstance(error, TransientNetworkError)
        assert len(transport.connect_calls) == 3
        assert manager.state == ConnectionState.IDLE
        presenter.show_fatal.assert_called_once_with(error)

        await asyncio.sleep(0.1)
        assert len(transport.connect_calls) == 3

    @pytest.mark.asyncio
    async def test_stream_end_without_close_is_transient(self, make_manager, wait_until):
        transport = FakeTransport([[ConnectionEvent.opened()], [ConnectionEvent.opened(), HOLD]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: len(transport.connect_calls) == 2)
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        await manager.stop()

    @pytest.mark.asyncio
    async def test_transport_exception_is_transient(self, make_manager, wait_until):
        def explode():
            raise RuntimeError("socket reset")

        transport = FakeTransport([[explode], [ConnectionEvent.opened(), HOLD]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(
            lambda: len(transport.connect_calls) == 2 and manager.state == ConnectionState.OPEN
        )

        await manager.stop()

    @pytest.mark.asyncio
    async def test_logged_out_does_not_reconnect(
        self, make_manager, credential_store, presenter
    ):
        credential_store.write(stored_credentials())
        transport = FakeTransport([
            [ConnectionEvent.opened(), ConnectionEvent.closed(401, "Connection Failure")],
        ])
        manager = make_manager(transport)

        await manager.start()
        error = await asyncio.wait_for(manager.wait_closed(), timeout=2.0)

        assert isinstance(error, TerminalAuthError)
        assert error.status_code == 401
        assert not credential_store.credentials_path.exists()
        assert len(credential_store.list_backups()) == 1
        assert manager.state == ConnectionState.IDLE

        await asyncio.sleep(0.05)
        assert len(transport.connect_calls) == 1

    @pytest.mark.asyncio
    async def test_session_expired_backs_up_and_reconnects_once(
        self, make_manager, credential_store, wait_until
    ):
        transport = FakeTransport([
            [make_credentials_update(), ConnectionEvent.opened(), ConnectionEvent.closed(428)],
            [HOLD],
        ])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: len(transport.connect_calls) == 2)
        await asyncio.sleep(0.05)

        assert len(transport.connect_calls) == 2
        assert len(credential_store.list_backups()) == 1
        assert manager.session.retry_count == 0
        assert manager.session.expired_retry_used

        await manager.stop()

    @pytest.mark.asyncio
    async def test_second_session_expiry_uses_backoff(
        self, make_manager, credential_store, wait_until
    ):
        transport = FakeTransport([
            [make_credentials_update(), ConnectionEvent.closed(428)],
            [ConnectionEvent.closed(428)],
            [HOLD],
        ])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: len(transport.connect_calls) == 3)

        assert len(credential_store.list_backups()) == 1
        assert manager.session.retry_count == 1

        await manager.stop()

    @pytest.mark.asyncio
    async def test_rate_limited_waits_extended_cooldown(
        self, make_manager, connection_config, wait_until
    ):
        config = connection_config.model_copy(update={"rate_limit_cooldown": 0.3})
        transport = FakeTransport([[ConnectionEvent.closed(405, "Method Not Allowed")], [HOLD]])
        manager = make_manager(transport, config)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.BACKOFF)
        await asyncio.sleep(0.1)

        assert len(transport.connect_calls) == 1
        assert manager.reconnect_pending

        await wait_until(lambda: len(transport.connect_calls) == 2)
        assert manager.session.retry_count == 1

        await manager.stop()


class TestReconnectScheduling:
    """Single-flight reconnects and shutdown."""

    @pytest.fixture
    def slow_config(self, connection_config):
        return connection_config.model_copy(
            update={"reconnect_base_delay": 0.5, "reconnect_max_delay": 1.0}
        )

    @pytest.mark.asyncio
    async def test_reconnect_is_noop_while_pending(self, make_manager, slow_config, wait_until):
        transport = FakeTransport([[ConnectionEvent.closed(500)]])
        manager = make_manager(transport, slow_config)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.BACKOFF)

        assert manager.reconnect_pending
        assert manager.reconnect() is False
        assert manager.reconnect() is False

        await manager.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_backoff_timer(self, make_manager, slow_config, wait_until):
        transport = FakeTransport([[ConnectionEvent.closed(500)]])
        manager = make_manager(transport, slow_config)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.BACKOFF)

        await manager.stop()

        assert not manager.reconnect_pending
        assert manager.state == ConnectionState.IDLE
        await asyncio.sleep(0.8)
        assert len(transport.connect_calls) == 1

    @pytest.mark.asyncio
    async def test_reconnect_is_noop_while_open(self, make_manager, wait_until):
        transport = FakeTransport([[ConnectionEvent.opened(), HOLD]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        assert manager.reconnect() is False
        assert not manager.reconnect_pending
        assert manager.state == ConnectionState.OPEN
        assert len(transport.connect_calls) == 1

        await manager.stop()

    @pytest.mark.asyncio
    async def test_reconnect_rejected_before_start(self, make_manager, fake_transport):
        manager = make_manager(fake_transport)

        assert manager.reconnect() is False
        assert fake_transport.connect_calls == []

    @pytest.mark.asyncio
    async def test_stop_closes_transport(self, make_manager, fake_transport, wait_until):
        manager = make_manager(fake_transport)

        await manager.start()
        await wait_until(lambda: fake_transport.connect_calls)
        await manager.stop()

        assert fake_transport.close_calls == 1
        assert await manager.wait_closed() is None


class TestOutboundChannel:
    """send_text / download_media / logout."""

    @pytest.mark.asyncio
    async def test_send_text_requires_open_session(self, make_manager, fake_transport):
        manager = make_manager(fake_transport)

        with pytest.raises(DeliveryError):
            await manager.send_text("someone@s.whatsapp.net", "hello")

        assert fake_transport.sent == []

    @pytest.mark.asyncio
    async def test_send_text_through_open_session(self, make_manager, wait_until):
        transport = FakeTransport([[ConnectionEvent.opened(), HOLD]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)
        await asyncio.gather(
            manager.send_text("a@s.whatsapp.net", "one"),
            manager.send_text("b@s.whatsapp.net", "two"),
        )

        assert sorted(transport.sent) == [("a@s.whatsapp.net", "one"), ("b@s.whatsapp.net", "two")]

        await manager.stop()

    @pytest.mark.asyncio
    async def test_send_failure_raises_delivery_error(self, make_manager, wait_until):
        transport = FakeTransport([[ConnectionEvent.opened(), HOLD]])
        transport.send_error = ConnectionResetError("gone")
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        with pytest.raises(DeliveryError) as exc_info:
            await manager.send_text("a@s.whatsapp.net", "one")

        assert exc_info.value.recipient_id == "a@s.whatsapp.net"
        assert manager.state == ConnectionState.OPEN

        await manager.stop()

    @pytest.mark.asyncio
    async def test_download_failure_raises_staging_error(self, make_manager, fake_transport):
        manager = make_manager(fake_transport)

        with pytest.raises(StagingError):
            await manager.download_media({"id": "x", "fail": True})

    @pytest.mark.asyncio
    async def test_logout_discards_credentials(
        self, make_manager, credential_store, wait_until
    ):
        credential_store.write(stored_credentials())
        transport = FakeTransport([[ConnectionEvent.opened(), HOLD]])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)
        await manager.logout()

        assert transport.logged_out
        assert not credential_store.credentials_path.exists()
        assert manager.state == ConnectionState.IDLE
        assert not manager.session.credentials.is_usable

        await asyncio.sleep(0.05)
        assert len(transport.connect_calls) == 1


class TestMessageDispatch:
    """Inbound messages reach the single registered handler."""

    @pytest.mark.asyncio
    async def test_each_message_dispatched_once(self, make_manager, wait_until):
        transport = FakeTransport([[
            ConnectionEvent.opened(),
            make_voice_event("MSG1"),
            make_voice_event("MSG2"),
            HOLD,
        ]])
        manager = make_manager(transport)
        received = []
        manager.on_message(lambda event: received.append(event.message_id))

        await manager.start()
        await wait_until(lambda: len(received) == 2)

        assert received == ["MSG1", "MSG2"]

        await manager.stop()

    def test_second_handler_rejected(self, make_manager, fake_transport):
        manager = make_manager(fake_transport)
        manager.on_message(lambda event: None)

        with pytest.raises(RuntimeError):
            manager.on_message(lambda event: None)

    @pytest.mark.asyncio
    async def test_handler_error_does_not_break_session(self, make_manager, wait_until):
        transport = FakeTransport([[
            ConnectionEvent.opened(),
            make_voice_event("BAD"),
            make_voice_event("GOOD"),
            HOLD,
        ]])
        manager = make_manager(transport)
        received = []

        def handler(event):
            received.append(event.message_id)
            if event.message_id == "BAD":
                raise ValueError("handler bug")

        manager.on_message(handler)

        await manager.start()
        await wait_until(lambda: len(received) == 2)

        assert manager.state == ConnectionState.OPEN
        assert len(transport.connect_calls) == 1

        await manager.stop()


class TestCredentialPersistence:
    """In-memory credentials never run ahead of the store."""

    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_in_step_with_store(
        self, make_manager, credential_store, monkeypatch, wait_until
    ):
        real_write = credential_store.write
        attempts = []

        def write_failing_once(credentials):
            attempts.append(credentials)
            if len(attempts) == 1:
                raise PersistenceError("disk full", operation="write")
            real_write(credentials)

        monkeypatch.setattr(credential_store, "write", write_failing_once)
        transport = FakeTransport([
            [make_credentials_update(), ConnectionEvent.opened(), HOLD],
            [make_credentials_update(), ConnectionEvent.opened(), HOLD],
        ])
        manager = make_manager(transport)

        await manager.start()
        await wait_until(lambda: manager.state == ConnectionState.OPEN)

        first_attempt_creds, _ = transport.connect_calls[0]
        retry_creds, _ = transport.connect_calls[1]
        assert first_attempt_creds == Credentials()
        assert retry_creds == Credentials()
        assert manager.session.credentials == credential_store.read()
        assert credential_store.read().is_usable
        assert len(transport.connect_calls) == 2

        await manager.stop()
