import base64
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

X402_VERSION = 1


class PaymentChallenge(BaseModel):
    x402Version: int = X402_VERSION
    error: str = "Payment required"
    segmentId: str
    paymentUrl: str


class PaymentRejected(BaseModel):
    x402Version: int = X402_VERSION
    error: str
    accepts: List[Dict[str, Any]] = []


class PaidStatus(BaseModel):
    segmentId: str
    isPaid: bool


class HealthResponse(BaseModel):
    status: str = "ok"
    enforcement: str


class PaymentReceipt(BaseModel):
    """What the facilitator reported after settling a proof."""

    success: bool = True
    payer: Optional[str] = None
    transaction: Optional[str] = None
    network: Optional[str] = None

    def to_header(self) -> str:
        return base64.b64encode(
            self.model_dump_json(exclude_none=True).encode("utf-8")
        ).decode("utf-8")


def build_challenge(segment_id: str) -> PaymentChallenge:
    return PaymentChallenge(segmentId=segment_id, paymentUrl=f"/pay/{segment_id}")
