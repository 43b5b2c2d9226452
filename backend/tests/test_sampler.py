import pytest

from pacemates.core.errors import (
    InvalidTransition,
    PermissionDenied,
    Timeout,
    Unavailable,
    classify_position_error,
)
from pacemates.tracking.sampler import GeoSampler, PushPositionSource
from pacemates.tracking.types import Coordinate

A = Coordinate(1, 1)
B = Coordinate(2, 2)


def make_sampler():
    source = PushPositionSource()
    samples, errors = [], []
    sampler = GeoSampler(source)
    handle = sampler.start(samples.append, errors.append)
    return source, sampler, handle, samples, errors


def test_samples_are_delivered_in_order():
    source, sampler, _, samples, errors = make_sampler()
    source.push(A)
    source.push(B)
    assert samples == [A, B]
    assert errors == []
    assert sampler.active


def test_stop_unsubscribes_and_is_idempotent():
    source, sampler, handle, samples, _ = make_sampler()
    sampler.stop(handle)
    sampler.stop(handle)
    sampler.stop()
    assert source.subscriber_count == 0
    assert source.push(A) == 0
    assert samples == []
    assert not sampler.active


def test_stop_without_start_is_safe():
    GeoSampler(PushPositionSource()).stop()


def test_sampler_cannot_be_restarted():
    _, sampler, _, _, _ = make_sampler()
    with pytest.raises(InvalidTransition):
        sampler.start(lambda s: None, lambda e: None)
    sampler.stop()
    with pytest.raises(InvalidTransition):
        sampler.start(lambda s: None, lambda e: None)


def test_error_is_classified_and_terminates_stream():
    source, sampler, _, samples, errors = make_sampler()
    source.fail(PermissionError("user said no"))

    assert len(errors) == 1
    assert isinstance(errors[0], PermissionDenied)
    assert not sampler.active

    source.push(A)
    source.fail(TimeoutError())
    assert samples == []
    assert len(errors) == 1


def test_error_handler_may_stop_the_sampler():
    source = PushPositionSource()
    sampler = GeoSampler(source)
    seen = []

    def on_error(err):
        sampler.stop()
        seen.append(err)

    sampler.start(lambda s: None, on_error)
    source.fail("timeout")
    assert len(seen) == 1
    assert isinstance(seen[0], Timeout)


@pytest.mark.parametrize(
    "raw,expected",
    [
        (PermissionError(), PermissionDenied),
        (TimeoutError(), Timeout),
        (OSError("gps chip off"), Unavailable),
        ("permission_denied", PermissionDenied),
        ("TIMEOUT", Timeout),
        ("something else", Unavailable),
        (Timeout("already typed"), Timeout),
    ],
)
def test_classify_position_error(raw, expected):
    assert isinstance(classify_position_error(raw), expected)
