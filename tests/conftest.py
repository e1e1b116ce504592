"""Shared pytest fixtures for all test types."""

import asyncio
import copy
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from voxrelay.lib.config import ConnectionConfig, PipelineConfig, ProviderConfig
from voxrelay.models.events import CredentialsUpdate, MessageEvent
from voxrelay.services.credentials.store import CredentialStore
from voxrelay.services.presentation.status import StatusPresenter

# Script marker: keep the stream open until the transport is closed.
HOLD = object()

PHONE_NUMBER = "12345678901"
SENDER_ID = "15550001111@s.whatsapp.net"


class FakeTransport:
    """
    Scripted MessagingTransport.

    Each connect() call consumes the next script: a list of events to
    yield. A callable in a script is invoked instead of yielded (it may
    raise). HOLD blocks until close(). When scripts run out, the stream
    holds.
    """

    def __init__(self, scripts=None):
        self.scripts = [list(script) for script in (scripts or [])]
        self.connect_calls = []
        self.sent = []
        self.pairing_requests = []
        self.pairing_code = "ABCD1234"
        self.pairing_error = None
        self.send_error = None
        self.media = {}
        self.logged_out = False
        self.close_calls = 0
        self._closed = None

    def connect(self, credentials, options):
        self.connect_calls.append((copy.deepcopy(credentials), options))
        script = self.scripts.pop(0) if self.scripts else [HOLD]
        return self._stream(script)

    async def _stream(self, script):
        self._closed = asyncio.Event()
        for item in script:
            if item is HOLD:
                await self._closed.wait()
                return
            if callable(item):
                item()
                continue
            yield item
            await asyncio.sleep(0)

    async def send_text(self, recipient_id, text):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((recipient_id, text))

    async def request_pairing_code(self, phone_number):
        self.pairing_requests.append(phone_number)
        if self.pairing_error is not None:
            raise self.pairing_error
        return self.pairing_code

    async def download_media(self, audio_ref):
        if audio_ref.get("fail"):
            raise RuntimeError("media server unavailable")
        return self.media.get(audio_ref.get("id"), b"OggS\x00fake-opus-audio")

    async def logout(self):
        self.logged_out = True

    async def close(self):
        self.close_calls += 1
        if self._closed is not None:
            self._closed.set()


def make_credentials_update(user_id: str = "15550009999:1@s.whatsapp.net") -> CredentialsUpdate:
    """A credential update carrying a complete identity record."""
    return CredentialsUpdate(
        identity={"id": user_id, "name": "Relay"},
        registered=True,
        key_material=b"\x01\x02\x03\x04",
        keys={"pre-key": {"1": {"public": "cHViMQ==", "private": "cHJpdjE="}}},
    )


def make_voice_event(message_id: str = "3EB0A1B2C3", sender_id: str = SENDER_ID, **audio) -> MessageEvent:
    """An inbound voice-note event."""
    audio_ref = {"id": message_id, "mimetype": "audio/ogg; codecs=opus", "seconds": 4}
    audio_ref.update(audio)
    return MessageEvent(
        message_id=message_id,
        remote_id=sender_id,
        payload={"audioMessage": audio_ref},
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Transport with no scripts (every connection holds)."""
    return FakeTransport()


@pytest.fixture
def presenter() -> MagicMock:
    """Status presenter double."""
    return MagicMock(spec=StatusPresenter)


@pytest.fixture
def auth_dir(tmp_path: Path) -> Path:
    """Credential directory."""
    return tmp_path / "auth_info"


@pytest.fixture
def credential_store(auth_dir: Path) -> CredentialStore:
    """Credential store in a temporary directory."""
    return CredentialStore(auth_dir)


@pytest.fixture
def connection_config(auth_dir: Path) -> ConnectionConfig:
    """Connection config with delays short enough for tests."""
    return ConnectionConfig(
        _env_file=None,
        phone_number=PHONE_NUMBER,
        auth_method="QR_CODE",
        transport="fake:create",
        auth_dir=str(auth_dir),
        server_env=False,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.05,
        reconnect_backoff_factor=1.5,
        reconnect_max_attempts=3,
        session_expired_cooldown=0.01,
        rate_limit_cooldown=0.01,
        pairing_code_expiry=5.0,
        pairing_settle_delay=0.0,
        pairing_retry_delay=0.05,
    )


@pytest.fixture
def provider_config() -> ProviderConfig:
    """Provider config with dummy keys."""
    return ProviderConfig(
        _env_file=None,
        ai_service="openai",
        transcription_service="openai",
        openai_api_key="sk-test",
        anthropic_api_key="ak-test",
        deepgram_api_key="dg-test",
        generate_summary=True,
    )


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    """Pipeline config staging into a temporary directory."""
    return PipelineConfig(_env_file=None, staging_dir=str(tmp_path / "staging"), max_concurrency=2)


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds, failing after a timeout."""

    async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait_until
