import pytest

from ensemble.lib.errors import (AuthError, CommandError, EnsembleError,
                                 NotConnectedError, NotFoundError,
                                 RequestTimeoutError, TransportError,
                                 error_from_payload)


@pytest.mark.parametrize("code, expected", [
    (401, AuthError),
    ("unauthorized", AuthError),
    ("Invalid_Token", AuthError),
    (404, NotFoundError),
    ("player_not_found", NotFoundError),
    ("invalid_args", CommandError),
    (999, CommandError),
])
def test_error_code_mapping(code, expected):
    error = error_from_payload({"error_code": code, "details": "oops"}, "players/get")
    assert type(error) is expected
    assert error.error_code == code
    assert error.details == "oops"
    assert str(error).startswith("players/get: oops")


def test_hierarchy():
    assert issubclass(RequestTimeoutError, TransportError)
    assert issubclass(NotConnectedError, TransportError)
    for cls in (TransportError, AuthError, NotFoundError, CommandError):
        assert issubclass(cls, EnsembleError)


def test_error_without_details():
    error = error_from_payload({"error_code": "boom"})
    assert isinstance(error, CommandError)
    assert "server error" in str(error)
