import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from segmentpay.main import create_app
from segmentpay.others.config import Settings
from segmentpay.others.sessions import InMemorySessionStore
from segmentpay.others.types import PaymentReceipt

PAY_TO = "0x1111111111111111111111111111111111111111"

PLAYLIST = """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:10
#EXTINF:10.0,
segment_000.ts
#EXTINF:10.0,
segment_007.ts
#EXT-X-ENDLIST
"""

SEGMENT_BYTES = {
    "000": b"\x47" + b"\x00" * 187,
    "007": b"\x47" + b"\x07" * 187,
}


class FakeVerifier:
    """Stands in for the facilitator. Outcomes are consumed in call order."""

    def __init__(self, outcomes=None, delay: float = 0.0):
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls = []

    def payment_requirements(self, resource_url):
        return [
            {
                "scheme": "exact",
                "network": "base-sepolia",
                "resource": resource_url,
                "payTo": PAY_TO,
            }
        ]

    async def verify_and_settle(self, proof, segment_id, resource_url):
        self.calls.append((proof, segment_id))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(outcome, Exception):
            raise outcome
        return PaymentReceipt(
            payer="0x1234567890123456789012345678901234567890",
            transaction="0x" + "b" * 64,
            network="base-sepolia",
        )


@pytest.fixture
def segments_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "segments"
    directory.mkdir()
    (directory / "playlist.m3u8").write_text(PLAYLIST, encoding="utf-8")
    for name, data in SEGMENT_BYTES.items():
        (directory / f"segment_{name}.ts").write_bytes(data)
    return directory


@pytest.fixture
def settings(segments_dir: Path, tmp_path: Path) -> Settings:
    return Settings(
        pay_to_address=PAY_TO,
        segments_dir=segments_dir,
        public_dir=tmp_path / "public",
        verify_timeout_seconds=2.0,
    )


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def client(settings, store, verifier):
    app = create_app(settings, store=store, verifier=verifier)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def paywall_stub(monkeypatch):
    monkeypatch.setattr(
        "segmentpay.routers.segments.render_paywall",
        lambda error, requirements, paywall_config=None: f"<html><body>{error}</body></html>",
    )


@pytest.fixture
def make_verifier():
    return FakeVerifier
