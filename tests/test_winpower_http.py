import json

import httpx
import pytest

from sources.errors import AuthenticationError, NetworkError
from sources.winpower_http import DEVICE_LIST_PARAMS, WinPowerHTTPClient

BASE_URL = "https://winpower.local:8081"


def make_client(handler):
    return WinPowerHTTPClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_login_success_sends_credentials():
    """Test login posts JSON credentials and returns the issued token"""
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "code": "000000",
            "message": "success",
            "data": {"deviceId": "dev-42", "token": "tok-1"}
        })

    async with make_client(handler) as client:
        result = await client.login("admin", "secret")

    assert result.token == "tok-1"
    assert result.device_id == "dev-42"
    assert seen["method"] == "POST"
    assert seen["url"] == f"{BASE_URL}/api/v1/auth/login"
    assert seen["body"] == {"username": "admin", "password": "secret"}
    assert seen["headers"]["Content-Type"] == "application/json"
    assert seen["headers"]["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_login_non_success_code_is_authentication_error():
    """Test an application code other than 000000 on login fails authentication"""
    def handler(request):
        return httpx.Response(200, json={"code": "401001", "message": "bad password", "data": ""})

    async with make_client(handler) as client:
        with pytest.raises(AuthenticationError) as exc_info:
            await client.login("admin", "wrong")

    assert "401001" in str(exc_info.value)


@pytest.mark.asyncio
async def test_login_http_500_is_authentication_error():
    """Test non-2xx statuses on login are classified as authentication failures"""
    def handler(request):
        return httpx.Response(500, text="internal error")

    async with make_client(handler) as client:
        with pytest.raises(AuthenticationError):
            await client.login("admin", "secret")


@pytest.mark.asyncio
async def test_login_without_token_is_authentication_error():
    """Test a success envelope without a token is never accepted"""
    def handler(request):
        return httpx.Response(200, json={"code": "000000", "message": "ok", "data": {"deviceId": "d"}})

    async with make_client(handler) as client:
        with pytest.raises(AuthenticationError):
            await client.login("admin", "secret")


@pytest.mark.asyncio
async def test_login_connect_error_is_network_error():
    """Test connection failures are network errors, not authentication errors"""
    def handler(request):
        raise httpx.ConnectError("Cannot reach host", request=request)

    async with make_client(handler) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.login("admin", "secret")

    assert not isinstance(exc_info.value, AuthenticationError)
    assert exc_info.value.timed_out is False


@pytest.mark.asyncio
async def test_login_timeout_is_network_error():
    """Test timeouts are network errors flagged as timed out"""
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    async with make_client(handler) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.login("admin", "secret", timeout=1.0)

    assert exc_info.value.timed_out is True


@pytest.mark.asyncio
async def test_login_invalid_json_is_network_error():
    """Test an undecodable body is a network error"""
    def handler(request):
        return httpx.Response(200, text="<html>not json</html>")

    async with make_client(handler) as client:
        with pytest.raises(NetworkError):
            await client.login("admin", "secret")


@pytest.mark.asyncio
async def test_fetch_devices_sends_bearer_token_and_fixed_query():
    """Test the device list request carries the token and the fixed query"""
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={
            "total": 1,
            "pageSize": 100,
            "currentPage": 1,
            "code": "000000",
            "msg": "ok",
            "data": [{"assetDevice": {"id": "ups-1"}, "realtime": {}, "connected": True}]
        })

    async with make_client(handler) as client:
        response = await client.fetch_devices("tok-1")

    assert seen["path"] == "/api/v1/deviceData/detail/list"
    assert seen["params"] == DEVICE_LIST_PARAMS
    assert seen["auth"] == "Bearer tok-1"
    assert response.total == 1
    assert response.page_size == 100
    assert response.current_page == 1
    assert response.code == "000000"
    assert len(response.data) == 1


@pytest.mark.asyncio
async def test_fetch_devices_http_401_is_authentication_error():
    """Test a bare HTTP 401 is always an authentication error"""
    def handler(request):
        return httpx.Response(401, json={"code": "401", "message": "Unauthorized", "data": "token expired"})

    async with make_client(handler) as client:
        with pytest.raises(AuthenticationError):
            await client.fetch_devices("stale-token")


@pytest.mark.asyncio
async def test_fetch_devices_code_401_with_http_200_is_authentication_error():
    """Test the error envelope is checked before the success envelope"""
    def handler(request):
        return httpx.Response(200, json={"code": "401", "message": "token invalid", "data": "expired"})

    async with make_client(handler) as client:
        with pytest.raises(AuthenticationError):
            await client.fetch_devices("stale-token")


@pytest.mark.asyncio
async def test_fetch_devices_other_error_code_is_network_error():
    """Test other application errors on the data call are network errors"""
    def handler(request):
        return httpx.Response(200, json={"code": "500100", "message": "database busy", "data": ""})

    async with make_client(handler) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.fetch_devices("tok-1")

    assert not isinstance(exc_info.value, AuthenticationError)


@pytest.mark.asyncio
async def test_fetch_devices_http_503_is_network_error():
    """Test unclassified non-2xx statuses on the data call are network errors"""
    def handler(request):
        return httpx.Response(503, text="busy")

    async with make_client(handler) as client:
        with pytest.raises(NetworkError):
            await client.fetch_devices("tok-1")


@pytest.mark.asyncio
async def test_fetch_devices_data_not_a_list_is_network_error():
    """Test a success code with a malformed data field is a decode failure"""
    def handler(request):
        return httpx.Response(200, json={"code": "000000", "msg": "ok", "data": "oops"})

    async with make_client(handler) as client:
        with pytest.raises(NetworkError):
            await client.fetch_devices("tok-1")


@pytest.mark.asyncio
async def test_client_reuses_one_pool_until_closed():
    """Test the underlying httpx client is shared across calls and closed once"""
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if request.url.path.endswith("/login"):
            return httpx.Response(200, json={"code": "000000", "data": {"deviceId": "d", "token": "t"}})
        return httpx.Response(200, json={"code": "000000", "msg": "ok", "data": []})

    client = make_client(handler)
    pool = client.client

    await client.login("admin", "secret")
    await client.fetch_devices("t")
    assert client.client is pool
    assert not pool.is_closed

    await client.aclose()
    assert pool.is_closed
    assert len(calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"message": "success", "data": {"deviceId": "d", "token": "t"}},
    {"code": "", "message": "success", "data": {"deviceId": "d", "token": "t"}},
    {"code": None, "message": "success", "data": {"deviceId": "d", "token": "t"}},
])
async def test_login_without_success_code_is_authentication_error(body):
    """Test only code 000000 counts as a successful login"""
    def handler(request):
        return httpx.Response(200, json=body)

    async with make_client(handler) as client:
        with pytest.raises(AuthenticationError):
            await client.login("admin", "secret")


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"msg": "ok", "data": []},
    {"code": "", "msg": "ok", "data": []},
    {"code": None, "msg": "ok", "data": []},
])
async def test_fetch_devices_without_success_code_is_network_error(body):
    """Test a device list with no usable code is rejected by the transport"""
    def handler(request):
        return httpx.Response(200, json=body)

    async with make_client(handler) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.fetch_devices("tok-1")

    assert not isinstance(exc_info.value, AuthenticationError)
