"""Tests for the Ok/Err result types."""

import pytest

from ema_client.emarestapi import ApiError, ApiRequestError, Err, ErrorKind, Ok, is_error, unwrap


def test_ok_discriminator():
    result = Ok([1, 2])
    assert result.ok is True
    assert not is_error(result)
    assert unwrap(result) == [1, 2]


def test_ok_may_carry_none():
    """A None payload is still a success, distinguished by the discriminator."""
    result = Ok(None)
    assert result.ok
    assert not is_error(result)


def test_err_discriminator_and_shortcuts():
    result = Err(ApiError(code=404, message="Not Found"))
    assert result.ok is False
    assert is_error(result)
    assert (result.code, result.message) == (404, "Not Found")
    assert result.error.kind is ErrorKind.APPLICATION


def test_unwrap_err_raises_with_error():
    error = ApiError(code=500, message="Connection refused", kind=ErrorKind.TRANSPORT)

    with pytest.raises(ApiRequestError) as exc_info:
        unwrap(Err(error))

    assert exc_info.value.error is error
    assert str(exc_info.value) == "[500] Connection refused"
