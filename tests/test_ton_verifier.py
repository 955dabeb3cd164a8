from __future__ import annotations

import httpx
import pytest

from conftest import HASH_A
from vip_access.verifiers.ton import TonCenterVerifier

RAW_WALLET = "0:83DFD552E63729B472FCBCC8C45EBCC6691702558B68EC7527E1BA403A0F31A8"
FRIENDLY_WALLET = "EQCD39VS5jcptHL8vMjEXrzGaRcCVYto7HUn4bpAOg8xqB2N"


def _payload(value="5000000000", destination=RAW_WALLET, aborted=False):
    return {
        "transactions": [
            {
                "hash": HASH_A,
                "description": {"aborted": aborted},
                "in_msg": {"destination": destination, "value": value},
            }
        ],
        "address_book": {RAW_WALLET: {"user_friendly": FRIENDLY_WALLET}},
    }


def _verifier(status_code=200, payload=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload if payload is not None else {})

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://toncenter.test/api/v3"
    )
    return TonCenterVerifier(tolerance=0.01, client=client)


@pytest.mark.asyncio
async def test_confirms_matching_transfer_by_friendly_address():
    seen = []
    verifier = _verifier(payload=_payload(), seen=seen)

    assert await verifier.confirm(HASH_A, 5, FRIENDLY_WALLET) is True
    assert seen[0].url.path == "/api/v3/transactions"
    assert seen[0].url.params["hash"] == HASH_A
    await verifier.aclose()


@pytest.mark.asyncio
async def test_confirms_raw_address_case_insensitively():
    verifier = _verifier(payload=_payload())
    assert await verifier.confirm(HASH_A, 5, RAW_WALLET.lower()) is True


@pytest.mark.asyncio
async def test_amount_within_tolerance():
    verifier = _verifier(payload=_payload(value="4995000000"))
    assert await verifier.confirm(HASH_A, 5, FRIENDLY_WALLET) is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        _payload(value="4000000000"),
        _payload(destination="0:0000000000000000000000000000000000000000000000000000000000000000"),
        _payload(aborted=True),
        {"transactions": [], "address_book": {}},
    ],
)
async def test_rejects_mismatching_transfers(payload):
    verifier = _verifier(payload=payload)
    assert await verifier.confirm(HASH_A, 5, FRIENDLY_WALLET) is False


@pytest.mark.asyncio
async def test_client_error_is_a_rejection():
    verifier = _verifier(status_code=404, payload={"error": "not found"})
    assert await verifier.confirm(HASH_A, 5, FRIENDLY_WALLET) is False


@pytest.mark.asyncio
async def test_server_error_raises_for_retry():
    verifier = _verifier(status_code=503, payload={"error": "unavailable"})
    with pytest.raises(httpx.HTTPStatusError):
        await verifier.confirm(HASH_A, 5, FRIENDLY_WALLET)
