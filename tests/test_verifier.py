import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from segmentpay.others.errors import VerificationFailed, VerifierUnavailable
from segmentpay.others.verifier import FacilitatorVerifier

PAY_TO = "0x1111111111111111111111111111111111111111"
PAYER = "0x1234567890123456789012345678901234567890"
RESOURCE = "http://testserver/unit/7"


def create_mock_payment_header(network="base-sepolia"):
    mock_payment = {
        "x402Version": 1,
        "scheme": "exact",
        "network": network,
        "payload": {
            "signature": "0x" + "a" * 130,
            "authorization": {
                "from": PAYER,
                "to": PAY_TO,
                "value": "1000",
                "validAfter": "0",
                "validBefore": "9999999999",
                "nonce": "0x" + "1" * 64,
            },
        },
    }
    return base64.b64encode(json.dumps(mock_payment).encode()).decode()


def make_facilitator(verify=None, settle=None):
    facilitator = MagicMock()
    facilitator.verify = AsyncMock(
        return_value=verify
        or SimpleNamespace(is_valid=True, invalid_reason=None, payer=PAYER)
    )
    facilitator.settle = AsyncMock(
        return_value=settle
        or SimpleNamespace(
            success=True,
            error_reason=None,
            transaction="0x" + "b" * 64,
            network="base-sepolia",
            payer=PAYER,
        )
    )
    return facilitator


def make_verifier(facilitator):
    return FacilitatorVerifier(
        price="$0.001",
        pay_to_address=PAY_TO,
        network="base-sepolia",
        facilitator_url="https://x402.org/facilitator",
        facilitator=facilitator,
    )


def test_requirements_describe_the_segment():
    verifier = make_verifier(make_facilitator())

    [requirements] = verifier.payment_requirements(RESOURCE)

    assert requirements.scheme == "exact"
    assert requirements.network == "base-sepolia"
    assert requirements.pay_to == PAY_TO
    assert requirements.resource == RESOURCE
    assert requirements.mime_type == "video/MP2T"
    assert requirements.max_amount_required == "1000"


def test_invalid_price_is_rejected_at_startup():
    with pytest.raises(ValueError, match="Invalid price"):
        FacilitatorVerifier(
            price="free",
            pay_to_address=PAY_TO,
            network="base-sepolia",
            facilitator_url="https://x402.org/facilitator",
            facilitator=make_facilitator(),
        )


@pytest.mark.asyncio
async def test_success_verifies_then_settles():
    facilitator = make_facilitator()
    verifier = make_verifier(facilitator)

    receipt = await verifier.verify_and_settle(create_mock_payment_header(), "7", RESOURCE)

    assert receipt.payer == PAYER
    assert receipt.transaction == "0x" + "b" * 64
    assert facilitator.verify.await_count == 1
    assert facilitator.settle.await_count == 1


@pytest.mark.asyncio
async def test_garbage_proof_never_reaches_facilitator():
    facilitator = make_facilitator()
    verifier = make_verifier(facilitator)

    with pytest.raises(VerificationFailed, match="Invalid payment header format") as exc_info:
        await verifier.verify_and_settle("not base64 json", "7", RESOURCE)

    assert exc_info.value.requirements
    assert not facilitator.verify.called


@pytest.mark.asyncio
async def test_proof_for_other_network_does_not_match():
    facilitator = make_facilitator()
    verifier = make_verifier(facilitator)

    with pytest.raises(VerificationFailed, match="No matching payment requirements"):
        await verifier.verify_and_settle(create_mock_payment_header("base"), "7", RESOURCE)

    assert not facilitator.verify.called


@pytest.mark.asyncio
async def test_invalid_payment_is_not_settled():
    facilitator = make_facilitator(
        verify=SimpleNamespace(is_valid=False, invalid_reason="insufficient_funds", payer=PAYER)
    )
    verifier = make_verifier(facilitator)

    with pytest.raises(VerificationFailed, match="Invalid payment: insufficient_funds"):
        await verifier.verify_and_settle(create_mock_payment_header(), "7", RESOURCE)

    assert not facilitator.settle.called


@pytest.mark.asyncio
async def test_settle_failure_is_a_verification_failure():
    facilitator = make_facilitator(
        settle=SimpleNamespace(
            success=False, error_reason="nonce already used", transaction=None, network=None, payer=None
        )
    )
    verifier = make_verifier(facilitator)

    with pytest.raises(VerificationFailed, match="Settle failed: nonce already used"):
        await verifier.verify_and_settle(create_mock_payment_header(), "7", RESOURCE)


@pytest.mark.asyncio
@pytest.mark.parametrize("step", ["verify", "settle"])
async def test_transport_errors_mean_unavailable(step):
    facilitator = make_facilitator()
    getattr(facilitator, step).side_effect = httpx.ConnectError("connection refused")
    verifier = make_verifier(facilitator)

    with pytest.raises(VerifierUnavailable, match=f"Facilitator {step} failed"):
        await verifier.verify_and_settle(create_mock_payment_header(), "7", RESOURCE)


@pytest.mark.asyncio
async def test_malformed_facilitator_reply_means_unavailable():
    facilitator = make_facilitator()
    facilitator.verify.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
    verifier = make_verifier(facilitator)

    with pytest.raises(VerifierUnavailable):
        await verifier.verify_and_settle(create_mock_payment_header(), "7", RESOURCE)
