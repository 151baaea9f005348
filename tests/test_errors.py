import pytest

from mplusbot.domain.errors import ErrorKind, UpstreamError, WowNotFound, WowRateLimited


@pytest.mark.parametrize(
    "status, cls, retryable",
    [(404, WowNotFound, False), (429, WowRateLimited, True), (503, UpstreamError, True), (400, UpstreamError, False)],
)
def test_from_status(status, cls, retryable):
    err = UpstreamError.from_status(status, source="Raider.IO", body="nope")
    assert type(err) is cls
    assert err.status == status
    assert err.retryable is retryable


def test_timeouts_and_parse_errors_are_terminal():
    assert not UpstreamError(ErrorKind.TIMEOUT).retryable
    assert not UpstreamError(ErrorKind.PARSE).retryable
    assert UpstreamError(ErrorKind.NETWORK).retryable


def test_http_message_truncates_body():
    err = UpstreamError.from_status(400, source="Blizzard", body="x" * 500)
    assert str(err) == "Blizzard error 400: " + "x" * 200
