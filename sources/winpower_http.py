"""WinPower G2 HTTP transport - login and device list requests"""
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from sources.errors import AuthenticationError, NetworkError, WinPowerError

logger = logging.getLogger(__name__)

SUCCESS_CODE = "000000"
AUTH_FAILED_CODE = "401"

LOGIN_PATH = "/api/v1/auth/login"
DEVICE_LIST_PATH = "/api/v1/deviceData/detail/list"

# Fixed query of the device list endpoint (first page, all areas, UPS devices)
DEVICE_LIST_PARAMS = {
    "current": "1",
    "pageSize": "100",
    "areaId": "00000000-0000-0000-0000-000000000000",
    "includeSubArea": "true",
    "pageNum": "1",
    "deviceType": "1",
}


@dataclass(frozen=True)
class LoginResult:
    token: str
    device_id: str


@dataclass
class DeviceListResponse:
    """Decoded success envelope of the device list endpoint."""
    code: str = SUCCESS_CODE
    msg: str = ""
    total: int = 0
    page_size: int = 0
    current_page: int = 0
    data: list[Any] = field(default_factory=list)


class WinPowerHTTPClient:
    """
    HTTP transport for the WinPower G2 API.

    Holds one pooled httpx.AsyncClient that is reused for every call and
    only closed by aclose(). Classifies failures into AuthenticationError
    and NetworkError.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        skip_tls_verify: bool = False,
        user_agent: str = "WinPower-Power-Bridge/0.1.0",
        transport: httpx.AsyncBaseTransport | None = None
    ):
        """
        Initialize the transport.

        Args:
            base_url: Appliance base URL without trailing slash
            timeout: Default request timeout in seconds
            skip_tls_verify: Disable certificate verification (self-signed appliances)
            user_agent: User-Agent header for requests
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            timeout=timeout,
            verify=not skip_tls_verify,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        """Close pooled connections. The instance is unusable afterwards."""
        await self.client.aclose()
        logger.debug("WinPower: HTTP client closed")

    async def login(self, username: str, password: str, timeout: float | None = None) -> LoginResult:
        """
        Authenticate and return the issued bearer token.

        Raises:
            AuthenticationError: rejected credentials, non-2xx status or non-success code
            NetworkError: connection failure, timeout or undecodable response
        """
        url = f"{self.base_url}{LOGIN_PATH}"
        logger.debug(f"WinPower: Logging in at {url} as {username}")

        body = await self._request(
            "POST",
            url,
            failure=AuthenticationError,
            json={"username": username, "password": password},
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

        data = body.get("data")
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            logger.warning("WinPower: Login response carries no token")
            raise AuthenticationError("login response did not contain a token")

        device_id = data.get("deviceId") or ""
        logger.info(f"WinPower: Login successful (device {device_id})")
        return LoginResult(token=token, device_id=str(device_id))

    async def fetch_devices(self, token: str, timeout: float | None = None) -> DeviceListResponse:
        """
        Fetch the device list with realtime telemetry.

        Raises:
            AuthenticationError: HTTP 401 or application code "401" (token rejected)
            NetworkError: any other failure
        """
        url = f"{self.base_url}{DEVICE_LIST_PATH}"
        logger.debug(f"WinPower: Fetching device data from {url}")

        body = await self._request(
            "GET",
            url,
            failure=NetworkError,
            params=DEVICE_LIST_PARAMS,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )

        data = body.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            logger.error(f"WinPower: Device list 'data' is {type(data).__name__}, expected list")
            raise NetworkError("failed to decode device list: 'data' is not a list")

        response = DeviceListResponse(
            code=SUCCESS_CODE,
            msg=str(body.get("msg") or ""),
            total=_as_int(body.get("total")),
            page_size=_as_int(body.get("pageSize")),
            current_page=_as_int(body.get("currentPage")),
            data=data,
        )
        logger.debug(f"WinPower: Device data fetched (total: {response.total}, count: {len(data)})")
        return response

    async def _request(
        self,
        method: str,
        url: str,
        failure: type[WinPowerError],
        timeout: float | None = None,
        **kwargs
    ) -> dict[str, Any]:
        """
        Execute a request and return the decoded success envelope.

        The error-shaped envelope (code/message) is checked before the body
        is treated as a success, because the appliance reports some
        application errors with HTTP 200.

        Args:
            failure: Error class for non-2xx statuses and non-success codes
        """
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"WinPower: {method} {url} timed out: {e!r}")
            raise NetworkError(f"request timed out: {e!r}", timed_out=True) from e
        except httpx.HTTPError as e:
            logger.error(f"WinPower: {method} {url} failed: {e!r}")
            raise NetworkError(f"HTTP request failed: {e!r}") from e

        if response.status_code == 401:
            logger.warning(f"WinPower: {method} {url} returned HTTP 401")
            raise AuthenticationError("HTTP 401 Unauthorized")

        if not response.is_success:
            logger.warning(
                f"WinPower: {method} {url} returned HTTP {response.status_code}: {response.text[:300]}"
            )
            raise failure(f"HTTP request failed with status {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"WinPower: Invalid JSON from {url}: {response.text[:300]}")
            raise NetworkError(f"failed to decode JSON response: {e}") from e

        if not isinstance(body, dict):
            raise NetworkError(f"failed to decode JSON response: expected object, got {type(body).__name__}")

        code = body.get("code")
        code = "" if code is None else str(code)
        if code != SUCCESS_CODE:
            message = body.get("message") or body.get("msg") or ""
            if not code:
                logger.warning(f"WinPower: {method} {url} returned no response code")
                raise failure("API error: response carries no code")
            logger.warning(f"WinPower: API returned error code {code}: {message}")
            if code == AUTH_FAILED_CODE:
                raise AuthenticationError(f"token rejected (code {code}): {message}")
            raise failure(f"API error (code {code}): {message}")

        return body


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0
