import pytest

from esupdater.structs.configuration import DurationError, parse_duration


@pytest.mark.parametrize('text, expected', [
    ('0', 0.0),
    ('0s', 0.0),
    ('2s', 2.0),
    ('500ms', 0.5),
    ('1m30s', 90.0),
    ('1.5h', 5400.0),
    ('2h45m', 9900.0),
    ('1m0.5s', 60.5),
    ('.5s', 0.5),
    ('1.s', 1.0),
    ('+3s', 3.0),
    ('-1.5s', -1.5),
    ('100us', 0.0001),
    ('100µs', 0.0001),
    ('100μs', 0.0001),
    ('1000000ns', 0.001),
])
def test_valid_durations(text, expected):
    assert parse_duration(text) == pytest.approx(expected)


@pytest.mark.parametrize('text', [
    '',
    '-',
    '2',
    '1.5',
    's',
    '2 s',
    ' 2s',
    '2sec',
    '2d',
    '1m30',
    'abc',
    '.s',
])
def test_invalid_durations(text):
    with pytest.raises(DurationError, match=r"Invalid duration"):
        parse_duration(text)


def test_duration_error_is_a_value_error():
    assert issubclass(DurationError, ValueError)
