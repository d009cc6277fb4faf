import pytest

from ensemble.lib.urls import api_url, normalize_server_url, websocket_url


@pytest.mark.parametrize("raw, expected", [
    ("192.168.1.20:8095", "http://192.168.1.20:8095"),
    ("10.0.0.2", "http://10.0.0.2"),
    ("172.16.0.9:8095/", "http://172.16.0.9:8095"),
    ("localhost:8095", "http://localhost:8095"),
    ("music.example.com", "https://music.example.com"),
    ("  http://10.0.0.2:8095/  ", "http://10.0.0.2:8095"),
    ("https://ma.example.com/", "https://ma.example.com"),
])
def test_normalize_server_url(raw, expected):
    assert normalize_server_url(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_normalize_rejects_empty(raw):
    with pytest.raises(ValueError):
        normalize_server_url(raw)


@pytest.mark.parametrize("raw, expected", [
    ("192.168.1.20", "http://192.168.1.20:8095/api"),
    ("http://10.0.0.5:9000", "http://10.0.0.5:9000/api"),
    ("ma.example.com", "https://ma.example.com/api"),
    ("https://ma.example.com:8443/", "https://ma.example.com:8443/api"),
])
def test_api_url(raw, expected):
    assert api_url(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("192.168.1.20", "ws://192.168.1.20:8095/ws"),
    ("http://127.0.0.1:5000", "ws://127.0.0.1:5000/ws"),
    ("ma.example.com", "wss://ma.example.com/ws"),
])
def test_websocket_url(raw, expected):
    assert websocket_url(raw) == expected
