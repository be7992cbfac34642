import pytest
from pytest_socket import disable_socket

def pytest_runtest_setup():
    """
    Runs before every test.
    We disable network access, so no test can reach a real WinPower
    appliance. HTTP goes through httpx.MockTransport instead.
    """
    disable_socket(allow_unix_socket=True)


@pytest.fixture
def winpower_env(monkeypatch):
    """Minimal valid WINPOWER_* settings in the process environment"""
    monkeypatch.setenv("WINPOWER_URL", "https://192.168.1.20:8081")
    monkeypatch.setenv("WINPOWER_USERNAME", "admin")
    monkeypatch.setenv("WINPOWER_PASSWORD", "secret")
    return monkeypatch
