from unittest import mock

import pytest
import requests

from villa_api.services.checkout_client import CheckoutApiClient, CheckoutApiConfig, CheckoutApiError


def _response(status_code, payload):
    r = mock.Mock()
    r.status_code = status_code
    r.text = "x"
    r.json.return_value = payload
    return r


def _client(response=None, error=None):
    http = mock.Mock(spec=requests.Session)
    if error:
        http.request.side_effect = error
    else:
        http.request.return_value = response
    return CheckoutApiClient(CheckoutApiConfig(base_url="https://api.example.com/api/v1/"), session=http), http


def test_create_session_posts_payload():
    c, http = _client(_response(200, {"clientSecret": "cs_1_secret", "sessionId": "cs_1"}))
    out = c.create_session({"villaId": "v1"})
    assert out["clientSecret"] == "cs_1_secret"
    http.request.assert_called_once_with(
        method="POST", url="https://api.example.com/api/v1/public/checkout/sessions",
        json={"villaId": "v1"}, timeout=20,
    )


def test_error_detail_is_surfaced():
    c, _ = _client(_response(409, {"detail": "Villa price has changed; please review your booking"}))
    with pytest.raises(CheckoutApiError) as exc:
        c.create_session({})
    assert exc.value.status_code == 409
    assert "price has changed" in str(exc.value)


def test_network_errors_are_wrapped():
    c, _ = _client(error=requests.ConnectionError("refused"))
    with pytest.raises(CheckoutApiError, match="Could not reach"):
        c.get_session_status("cs_1")


def test_status_lookup_path():
    c, http = _client(_response(200, {"status": "complete", "bookingRef": "VLA-ABC123"}))
    assert c.get_session_status("cs_1")["bookingRef"] == "VLA-ABC123"
    assert http.request.call_args.kwargs["url"].endswith("/public/checkout/sessions/cs_1")
