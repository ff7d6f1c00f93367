import json

import httpx
import pytest

from walletchat.core.recovery.errors import (
    ConfirmationTimeoutError,
    ErrorCategory,
    NetworkError,
    RateLimitError,
    RecoverableError,
    RpcError,
    TransactionExpiredError,
    TransactionFailedError,
)
from walletchat.providers.solana_rpc import SolanaRpcClient, endpoint_label

ENDPOINT = "https://rpc.test/?api-key=secret"


def rpc_client(handler, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SolanaRpcClient(ENDPOINT, http_client=http_client, **kwargs)


def result(value):
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": value})


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_endpoint_label_hides_api_key():
    assert endpoint_label(ENDPOINT) == "https://rpc.test"


@pytest.mark.asyncio
async def test_get_balance_sends_json_rpc():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return result({"context": {"slot": 1}, "value": 1_500_000_000})

    client = rpc_client(handler)

    assert await client.get_balance("Addr") == 1_500_000_000
    assert seen["method"] == "getBalance"
    assert seen["params"][0] == "Addr"


@pytest.mark.asyncio
async def test_token_accounts_are_flattened():
    def handler(request):
        return result(
            {
                "value": [
                    {
                        "pubkey": "TokenAcct",
                        "account": {
                            "data": {
                                "parsed": {
                                    "info": {
                                        "mint": "Mint",
                                        "owner": "Owner",
                                        "tokenAmount": {"amount": "12345678", "decimals": 6, "uiAmountString": "12.345678"},
                                    }
                                }
                            }
                        },
                    }
                ]
            }
        )

    accounts = await rpc_client(handler).get_token_accounts_by_owner("Owner")

    assert accounts == [
        {
            "address": "TokenAcct",
            "mint": "Mint",
            "owner": "Owner",
            "amount": 12345678,
            "decimals": 6,
            "ui_amount_string": "12.345678",
        }
    ]


@pytest.mark.asyncio
async def test_http_429_is_a_rate_limit():
    client = rpc_client(lambda request: httpx.Response(429, text="slow down"))

    with pytest.raises(RateLimitError) as exc_info:
        await client.get_balance("Addr")
    assert "secret" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_json_rpc_error_is_classified():
    def handler(request):
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32002, "message": "Blockhash not found"}},
        )

    with pytest.raises(RpcError) as exc_info:
        await rpc_client(handler).get_latest_blockhash()

    assert exc_info.value.code == -32002
    assert exc_info.value.category == ErrorCategory.SIGNATURE_EXPIRED


@pytest.mark.asyncio
async def test_server_errors_and_transport_failures_are_network_errors():
    with pytest.raises(NetworkError):
        await rpc_client(lambda request: httpx.Response(503)).get_balance("Addr")

    def refuse(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(NetworkError):
        await rpc_client(refuse).get_balance("Addr")


@pytest.mark.asyncio
async def test_timeouts_are_recoverable():
    def slow(request):
        raise httpx.ReadTimeout("read timed out")

    with pytest.raises(RecoverableError) as exc_info:
        await rpc_client(slow).get_balance("Addr")
    assert exc_info.value.category == ErrorCategory.TIMEOUT


@pytest.mark.asyncio
async def test_simulation_result_shape():
    def handler(request):
        return result({"value": {"err": "AccountNotFound", "logs": ["log line"], "unitsConsumed": 150}})

    simulation = await rpc_client(handler).simulate_transaction(b"\x01\x02")

    assert simulation == {"error": "AccountNotFound", "logs": ["log line"], "units_consumed": 150}


def status_handler(statuses, block_height=100):
    """Serves ``statuses`` one per getSignatureStatuses call, repeating the last."""

    calls = {"status": 0}

    def handler(request):
        method = json.loads(request.content)["method"]
        if method == "getSignatureStatuses":
            index = min(calls["status"], len(statuses) - 1)
            calls["status"] += 1
            return result({"value": [statuses[index]]})
        if method == "getBlockHeight":
            return result(block_height)
        raise AssertionError(f"unexpected method {method}")

    return handler


@pytest.mark.asyncio
async def test_confirm_polls_until_confirmed():
    time = FakeTime()
    client = rpc_client(
        status_handler([None, {"err": None, "confirmationStatus": "processed"}, {"err": None, "confirmationStatus": "confirmed", "slot": 7}]),
        sleep=time.sleep,
        clock=time.clock,
    )

    confirmation = await client.confirm_transaction("sig", blockhash="bh", timeout_s=30, poll_interval_s=1.0)

    assert confirmation["slot"] == 7
    assert confirmation["confirmation_status"] == "confirmed"
    assert time.sleeps == [1.0, 1.5]


@pytest.mark.asyncio
async def test_confirm_raises_on_chain_error():
    time = FakeTime()
    client = rpc_client(
        status_handler([{"err": {"InstructionError": [0, "Custom"]}, "confirmationStatus": "confirmed"}]),
        sleep=time.sleep,
        clock=time.clock,
    )

    with pytest.raises(TransactionFailedError):
        await client.confirm_transaction("sig")


@pytest.mark.asyncio
async def test_confirm_detects_expired_blockhash():
    time = FakeTime()
    client = rpc_client(status_handler([None], block_height=251), sleep=time.sleep, clock=time.clock)

    with pytest.raises(TransactionExpiredError):
        await client.confirm_transaction("sig", last_valid_block_height=250)


@pytest.mark.asyncio
async def test_confirm_times_out():
    time = FakeTime()
    client = rpc_client(status_handler([None]), sleep=time.sleep, clock=time.clock)

    with pytest.raises(ConfirmationTimeoutError):
        await client.confirm_transaction("sig", timeout_s=10, poll_interval_s=1.0)

    assert max(time.sleeps) == 5.0
