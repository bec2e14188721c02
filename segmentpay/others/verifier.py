"""
Payment verification against an x402 facilitator.

The facilitator does the cryptographic checks and the on-chain settlement;
this module only builds the payment requirements for a segment, hands the
client's proof over, and sorts the outcome into "the proof is bad"
(VerificationFailed) versus "we could not find out" (VerifierUnavailable).
"""
import json
import logging
from typing import List, Optional, Protocol

import httpx
from x402.common import find_matching_payment_requirements, process_price_to_atomic_amount
from x402.encoding import safe_base64_decode
from x402.facilitator import FacilitatorClient, FacilitatorConfig
from x402.types import PaymentPayload, PaymentRequirements

from .config import Settings
from .errors import VerificationFailed, VerifierUnavailable
from .types import PaymentReceipt

logger = logging.getLogger(__name__)

SEGMENT_DESCRIPTION = "Video segment access"
SEGMENT_MIME_TYPE = "video/MP2T"


class PaymentVerifier(Protocol):
    def payment_requirements(self, resource_url: str) -> List[PaymentRequirements]:
        ...

    async def verify_and_settle(
        self, proof: str, segment_id: str, resource_url: str
    ) -> PaymentReceipt:
        ...


class FacilitatorVerifier:
    def __init__(
        self,
        *,
        price: str,
        pay_to_address: str,
        network: str,
        facilitator_url: str,
        max_deadline_seconds: int = 60,
        facilitator: Optional[FacilitatorClient] = None,
    ):
        try:
            amount, asset_address, eip712_domain = process_price_to_atomic_amount(
                price, network
            )
        except Exception as e:
            raise ValueError(f"Invalid price: {price}. Error: {e}") from e

        self.price = price
        self.pay_to_address = pay_to_address
        self.network = network
        self.max_deadline_seconds = max_deadline_seconds
        self._amount = amount
        self._asset_address = asset_address
        self._eip712_domain = eip712_domain
        self.facilitator = facilitator or FacilitatorClient(
            FacilitatorConfig(url=facilitator_url)
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "FacilitatorVerifier":
        settings.validate_required()
        return cls(
            price=settings.price_per_segment,
            pay_to_address=settings.pay_to_address,
            network=settings.network,
            facilitator_url=settings.facilitator_url,
        )

    def payment_requirements(self, resource_url: str) -> List[PaymentRequirements]:
        return [
            PaymentRequirements(
                scheme="exact",
                network=self.network,
                asset=self._asset_address,
                max_amount_required=self._amount,
                resource=resource_url,
                description=SEGMENT_DESCRIPTION,
                mime_type=SEGMENT_MIME_TYPE,
                pay_to=self.pay_to_address,
                max_timeout_seconds=self.max_deadline_seconds,
                extra=self._eip712_domain,
            )
        ]

    def _decode_proof(
        self, proof: str, requirements: List[PaymentRequirements]
    ) -> PaymentPayload:
        try:
            return PaymentPayload(**json.loads(safe_base64_decode(proof)))
        except Exception as e:
            logger.warning(f"Invalid payment header format: {e}")
            raise VerificationFailed("Invalid payment header format", requirements) from e

    async def verify_and_settle(
        self, proof: str, segment_id: str, resource_url: str
    ) -> PaymentReceipt:
        requirements = self.payment_requirements(resource_url)
        payment = self._decode_proof(proof, requirements)
        payment_requirements = find_matching_payment_requirements(requirements, payment)
        if not payment_requirements:
            raise VerificationFailed(
                "No matching payment requirements found", requirements
            )

        try:
            verify_response = await self.facilitator.verify(payment, payment_requirements)
        except (httpx.HTTPError, ValueError) as e:
            raise VerifierUnavailable(f"Facilitator verify failed: {e}") from e

        if not verify_response.is_valid:
            reason = verify_response.invalid_reason or "Unknown error"
            logger.info(f"Payment for segment {segment_id} rejected: {reason}")
            raise VerificationFailed(f"Invalid payment: {reason}", requirements)

        try:
            settle_response = await self.facilitator.settle(payment, payment_requirements)
        except (httpx.HTTPError, ValueError) as e:
            raise VerifierUnavailable(f"Facilitator settle failed: {e}") from e

        if not settle_response.success:
            reason = settle_response.error_reason or "Unknown error"
            logger.info(f"Settlement for segment {segment_id} failed: {reason}")
            raise VerificationFailed(f"Settle failed: {reason}", requirements)

        return PaymentReceipt(
            payer=settle_response.payer or verify_response.payer,
            transaction=settle_response.transaction,
            network=settle_response.network or self.network,
        )
