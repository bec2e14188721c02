"""
Per-(session, segment) access decisions.

A segment moves UNPAID -> CHALLENGED -> VERIFYING -> PAID for a session.
Only PAID is stored (as membership in the session's paid-set); the other
states are re-derived from the request on every call:

  * paid-set contains the segment            -> PAID, grant
  * programmatic caller, no X-PAYMENT header -> ChallengeRequired
  * interactive caller, no X-PAYMENT header  -> PaymentPageRequired
  * X-PAYMENT header present                 -> VERIFYING via the verifier

Two gates implement the same interface. BypassGate (demo mode) grants
everything; EnforcedGate does the above.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Set, Tuple

from fastapi import Request

from .classifier import Decision, classify_request, decide, payment_proof
from .config import Settings
from .errors import (
    AccessError,
    ChallengeRequired,
    PaymentPageRequired,
    VerifierUnavailable,
)
from .sessions import PaidSet
from .types import PaymentReceipt
from .verifier import FacilitatorVerifier, PaymentVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateRequest:
    session_id: str
    resource_url: str
    accept: Optional[str] = None
    proof: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request, session_id: str) -> "GateRequest":
        return cls(
            session_id=session_id,
            resource_url=str(request.url),
            accept=request.headers.get("accept"),
            proof=payment_proof(request.headers),
        )


@dataclass(frozen=True)
class Grant:
    segment_id: str
    via: str
    receipt: Optional[PaymentReceipt] = None


class AccessGate(ABC):
    enforcement: str

    @abstractmethod
    async def authorize(
        self, segment_id: str, paid: PaidSet, request: GateRequest
    ) -> Grant:
        """Return a Grant or raise an AccessError subclass."""

    async def drain(self) -> None:
        pass


class BypassGate(AccessGate):
    enforcement = "bypass"

    async def authorize(
        self, segment_id: str, paid: PaidSet, request: GateRequest
    ) -> Grant:
        return Grant(segment_id=segment_id, via="bypass")


class EnforcedGate(AccessGate):
    enforcement = "enforced"

    def __init__(self, verifier: PaymentVerifier, verify_timeout_seconds: float = 30.0):
        self.verifier = verifier
        self.verify_timeout_seconds = verify_timeout_seconds
        self._inflight: Dict[Tuple[str, str], asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()

    async def authorize(
        self, segment_id: str, paid: PaidSet, request: GateRequest
    ) -> Grant:
        if paid.contains(segment_id):
            logger.info(f"Segment {segment_id} already paid in session {request.session_id[:8]}...")
            return Grant(segment_id=segment_id, via="paid")

        kind = classify_request(request.accept)
        decision = decide(False, kind, request.proof is not None)

        if decision is Decision.CHALLENGE:
            logger.info(f"Challenging {kind.value} request for segment {segment_id}")
            raise ChallengeRequired(segment_id)

        if request.proof is None:
            raise PaymentPageRequired(
                segment_id, self.verifier.payment_requirements(request.resource_url)
            )

        return await self._verify(segment_id, paid, request)

    async def _verify(self, segment_id: str, paid: PaidSet, request: GateRequest) -> Grant:
        key = (request.session_id, segment_id)

        # Someone in this session is already paying for this segment; do not
        # charge twice. If their attempt fails, fall through to ours.
        while (pending := self._inflight.get(key)) is not None and not pending.done():
            logger.info(f"Waiting on in-flight verification for segment {segment_id}")
            try:
                await asyncio.wait_for(asyncio.shield(pending), self.verify_timeout_seconds)
            except asyncio.TimeoutError as e:
                raise VerifierUnavailable("Timed out waiting for payment verification") from e
            except AccessError:
                pass
            if paid.contains(segment_id):
                return Grant(segment_id=segment_id, via="paid")

        task = asyncio.create_task(self._verify_and_record(segment_id, paid, request))
        self._inflight[key] = task
        self._background.add(task)
        task.add_done_callback(lambda t: self._forget(key, t))

        # shield: a disconnect or timeout must not abort a submitted payment
        try:
            receipt = await asyncio.wait_for(asyncio.shield(task), self.verify_timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Verification for segment {segment_id} exceeded "
                f"{self.verify_timeout_seconds}s; leaving it to finish in the background"
            )
            raise VerifierUnavailable("Payment verification timed out") from e

        return Grant(segment_id=segment_id, via="verified", receipt=receipt)

    async def _verify_and_record(
        self, segment_id: str, paid: PaidSet, request: GateRequest
    ) -> PaymentReceipt:
        try:
            receipt = await self.verifier.verify_and_settle(
                request.proof, segment_id, request.resource_url
            )
        except AccessError:
            raise
        except Exception as e:
            logger.exception(f"Verifier error for segment {segment_id}")
            raise VerifierUnavailable(f"Verifier error: {e}") from e

        if paid.add(segment_id):
            logger.info(f"Segment {segment_id} paid, added to session {request.session_id[:8]}...")
        else:
            logger.info(f"Segment {segment_id} was already recorded for session {request.session_id[:8]}...")
        return receipt

    def _forget(self, key: Tuple[str, str], task: asyncio.Task) -> None:
        self._background.discard(task)
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Verification task for {key[1]} ended with {task.exception()!r}")

    async def drain(self) -> None:
        """Let outstanding verifications finish so no payment is dropped."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


def build_access_gate(
    settings: Settings, verifier: Optional[PaymentVerifier] = None
) -> AccessGate:
    if settings.demo_mode:
        return BypassGate()
    if verifier is None:
        verifier = FacilitatorVerifier.from_settings(settings)
    return EnforcedGate(verifier, verify_timeout_seconds=settings.verify_timeout_seconds)
