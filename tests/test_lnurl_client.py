"""Tests for the LNURL-pay Lightning Address client."""

import hashlib
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from lemonade_legends.lnurl_client import (
    LightningAddressClient,
    LightningInvoice,
    LnurlAmountError,
    LnurlConnectionError,
    LnurlError,
    LnurlNotFoundError,
    LnurlProtocolError,
    LnurlServerError,
    LnurlTimeoutError,
    lnurlp_url,
    parse_lightning_address,
    preimage_matches,
)

ADDRESS = "lemonade@pay.example.com"
PAY_URL = "https://pay.example.com/.well-known/lnurlp/lemonade"
CALLBACK = "https://pay.example.com/lnurlp/lemonade/callback"
VERIFY = "https://pay.example.com/lnurlp/lemonade/verify/abc"

PREIMAGE = "11" * 32
PAYMENT_HASH = hashlib.sha256(bytes.fromhex(PREIMAGE)).hexdigest()

PAY_PARAMS = {
    "tag": "payRequest",
    "callback": CALLBACK,
    "minSendable": 1_000,
    "maxSendable": 100_000_000,
    "metadata": "[[\"text/plain\",\"Lemonade\"]]",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _response(status_code: int = 200, json_data: dict | list | None = None, text: str | None = None) -> httpx.Response:
    """Build a fake httpx.Response."""
    if text is not None:
        return httpx.Response(
            status_code=status_code,
            text=text,
            request=httpx.Request("GET", PAY_URL),
        )
    return httpx.Response(
        status_code=status_code,
        json=json_data,
        request=httpx.Request("GET", PAY_URL),
    )


def _client(*responses: httpx.Response) -> LightningAddressClient:
    client = LightningAddressClient(ADDRESS)
    client._client.get = AsyncMock(side_effect=list(responses))
    return client


def _decoded(amount_msat: int | None = 21_000, payment_hash: str = PAYMENT_HASH):
    return SimpleNamespace(
        amount_msat=amount_msat,
        payment_hash=payment_hash,
        expiry_time=1_700_003_600,
    )


def _invoice(verify_url: str | None = VERIFY) -> LightningInvoice:
    return LightningInvoice(
        bolt11="lnbc210n1test",
        payment_hash=PAYMENT_HASH,
        amount_sats=21,
        verify_url=verify_url,
    )


# ---------------------------------------------------------------------------
# Address parsing
# ---------------------------------------------------------------------------


class TestParseLightningAddress:
    def test_splits_user_and_domain(self) -> None:
        assert parse_lightning_address("user@walletofsatoshi.com") == ("user", "walletofsatoshi.com")

    def test_lowercases_and_strips(self) -> None:
        assert parse_lightning_address("  User@Example.COM ") == ("user", "example.com")

    @pytest.mark.parametrize("bad", ["", "user", "@example.com", "user@", "user@localhost", "a b@example.com"])
    def test_rejects_invalid(self, bad: str) -> None:
        with pytest.raises(ValueError, match="Invalid Lightning Address"):
            parse_lightning_address(bad)

    def test_well_known_url(self) -> None:
        assert lnurlp_url(ADDRESS) == PAY_URL

    def test_onion_uses_http(self) -> None:
        assert lnurlp_url("me@abcdef.onion") == "http://abcdef.onion/.well-known/lnurlp/me"

    def test_client_rejects_invalid_address(self) -> None:
        with pytest.raises(ValueError):
            LightningAddressClient("not-an-address")


class TestPreimageMatches:
    def test_matching_preimage(self) -> None:
        assert preimage_matches(PREIMAGE, PAYMENT_HASH) is True

    def test_hash_case_insensitive(self) -> None:
        assert preimage_matches(PREIMAGE, PAYMENT_HASH.upper()) is True

    def test_wrong_preimage(self) -> None:
        assert preimage_matches("22" * 32, PAYMENT_HASH) is False

    def test_non_hex_preimage(self) -> None:
        assert preimage_matches("zz", PAYMENT_HASH) is False


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_404_not_found(self) -> None:
        client = _client(_response(404, text="no such user"))
        with pytest.raises(LnurlNotFoundError) as exc_info:
            await client.fetch_pay_params()
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_500_server_error(self) -> None:
        client = _client(_response(502, text="bad gateway"))
        with pytest.raises(LnurlServerError):
            await client.fetch_pay_params()

    @pytest.mark.asyncio
    async def test_other_4xx_base_error(self) -> None:
        client = _client(_response(400, text="bad request"))
        with pytest.raises(LnurlError) as exc_info:
            await client.fetch_pay_params()
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_connect_error(self) -> None:
        client = LightningAddressClient(ADDRESS)
        client._client.get = AsyncMock(side_effect=httpx.ConnectError("dns failure"))
        with pytest.raises(LnurlConnectionError):
            await client.fetch_pay_params()

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        client = LightningAddressClient(ADDRESS)
        client._client.get = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(LnurlTimeoutError):
            await client.fetch_pay_params()

    @pytest.mark.asyncio
    async def test_status_error_body(self) -> None:
        client = _client(_response(200, {"status": "ERROR", "reason": "user disabled"}))
        with pytest.raises(LnurlProtocolError, match="user disabled"):
            await client.fetch_pay_params()

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        client = _client(_response(200, text="<html>"))
        with pytest.raises(LnurlProtocolError, match="Non-JSON"):
            await client.fetch_pay_params()


# ---------------------------------------------------------------------------
# fetch_pay_params
# ---------------------------------------------------------------------------


class TestFetchPayParams:
    @pytest.mark.asyncio
    async def test_fetches_well_known_url(self) -> None:
        client = _client(_response(200, PAY_PARAMS))
        params = await client.fetch_pay_params()
        assert params["callback"] == CALLBACK
        client._client.get.assert_called_once_with(PAY_URL, params=None)

    @pytest.mark.asyncio
    async def test_cached_after_first_fetch(self) -> None:
        client = _client(_response(200, PAY_PARAMS))
        await client.fetch_pay_params()
        await client.fetch_pay_params()
        assert client._client.get.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_callback(self) -> None:
        client = _client(_response(200, {"minSendable": 1000, "maxSendable": 2000}))
        with pytest.raises(LnurlProtocolError, match="callback"):
            await client.fetch_pay_params()


# ---------------------------------------------------------------------------
# create_invoice
# ---------------------------------------------------------------------------


class TestCreateInvoice:
    @pytest.mark.asyncio
    async def test_requests_amount_in_msat(self) -> None:
        client = _client(
            _response(200, PAY_PARAMS),
            _response(200, {"pr": "lnbc210n1test", "routes": [], "verify": VERIFY}),
        )
        with patch("lemonade_legends.lnurl_client.bolt11.decode", return_value=_decoded()):
            invoice = await client.create_invoice(21)

        assert invoice == LightningInvoice(
            bolt11="lnbc210n1test",
            payment_hash=PAYMENT_HASH,
            amount_sats=21,
            verify_url=VERIFY,
            expires_at=1_700_003_600,
        )
        callback_call = client._client.get.call_args_list[1]
        assert callback_call.args[0] == CALLBACK
        assert callback_call.kwargs["params"] == {"amount": 21_000}

    @pytest.mark.asyncio
    async def test_comment_sent_when_allowed(self) -> None:
        client = _client(
            _response(200, {**PAY_PARAMS, "commentAllowed": 5}),
            _response(200, {"pr": "lnbc210n1test"}),
        )
        with patch("lemonade_legends.lnurl_client.bolt11.decode", return_value=_decoded()):
            invoice = await client.create_invoice(21, comment="lemonade")
        assert invoice.verify_url is None
        params = client._client.get.call_args_list[1].kwargs["params"]
        assert params["comment"] == "lemon"

    @pytest.mark.asyncio
    async def test_comment_omitted_when_not_allowed(self) -> None:
        client = _client(_response(200, PAY_PARAMS), _response(200, {"pr": "lnbc210n1test"}))
        with patch("lemonade_legends.lnurl_client.bolt11.decode", return_value=_decoded()):
            await client.create_invoice(21, comment="lemonade")
        params = client._client.get.call_args_list[1].kwargs["params"]
        assert "comment" not in params

    @pytest.mark.asyncio
    async def test_below_min_sendable(self) -> None:
        client = _client(_response(200, {**PAY_PARAMS, "minSendable": 50_000}))
        with pytest.raises(LnurlAmountError, match="outside the sendable range"):
            await client.create_invoice(21)

    @pytest.mark.asyncio
    async def test_above_max_sendable(self) -> None:
        client = _client(_response(200, {**PAY_PARAMS, "maxSendable": 10_000}))
        with pytest.raises(LnurlAmountError):
            await client.create_invoice(21)

    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self) -> None:
        client = _client()
        with pytest.raises(ValueError, match="positive"):
            await client.create_invoice(0)

    @pytest.mark.asyncio
    async def test_missing_pr(self) -> None:
        client = _client(_response(200, PAY_PARAMS), _response(200, {"routes": []}))
        with pytest.raises(LnurlProtocolError, match="payment request"):
            await client.create_invoice(21)

    @pytest.mark.asyncio
    async def test_undecodable_invoice(self) -> None:
        client = _client(_response(200, PAY_PARAMS), _response(200, {"pr": "garbage"}))
        with patch("lemonade_legends.lnurl_client.bolt11.decode", side_effect=ValueError("bad bech32")):
            with pytest.raises(LnurlProtocolError, match="undecodable"):
                await client.create_invoice(21)

    @pytest.mark.asyncio
    async def test_amount_mismatch(self) -> None:
        client = _client(_response(200, PAY_PARAMS), _response(200, {"pr": "lnbc1test"}))
        with patch("lemonade_legends.lnurl_client.bolt11.decode", return_value=_decoded(amount_msat=1_000)):
            with pytest.raises(LnurlProtocolError, match="does not match"):
                await client.create_invoice(21)

    @pytest.mark.asyncio
    async def test_callback_error_status(self) -> None:
        client = _client(
            _response(200, PAY_PARAMS),
            _response(200, {"status": "ERROR", "reason": "amount too small"}),
        )
        with pytest.raises(LnurlProtocolError, match="amount too small"):
            await client.create_invoice(21)


# ---------------------------------------------------------------------------
# check_payment
# ---------------------------------------------------------------------------


class TestCheckPayment:
    @pytest.mark.asyncio
    async def test_unsettled(self) -> None:
        client = _client(_response(200, {"status": "OK", "settled": False, "preimage": None, "pr": "lnbc"}))
        status = await client.check_payment(_invoice())
        assert status.settled is False
        assert status.preimage is None
        client._client.get.assert_called_once_with(VERIFY, params=None)

    @pytest.mark.asyncio
    async def test_settled_with_valid_preimage(self) -> None:
        client = _client(_response(200, {"status": "OK", "settled": True, "preimage": PREIMAGE}))
        status = await client.check_payment(_invoice())
        assert status.settled is True
        assert status.preimage == PREIMAGE

    @pytest.mark.asyncio
    async def test_settled_with_wrong_preimage(self) -> None:
        client = _client(_response(200, {"status": "OK", "settled": True, "preimage": "22" * 32}))
        with pytest.raises(LnurlProtocolError, match="Preimage"):
            await client.check_payment(_invoice())

    @pytest.mark.asyncio
    async def test_no_verify_url(self) -> None:
        client = _client()
        with pytest.raises(LnurlProtocolError, match="LUD-21"):
            await client.check_payment(_invoice(verify_url=None))


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes(self) -> None:
        async with LightningAddressClient(ADDRESS) as client:
            assert client.ln_address == ADDRESS
        assert client._client.is_closed
