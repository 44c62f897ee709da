from ride_telemetry.formatters import format_age, format_duration_long, format_speed


def test_format_duration_long():
    assert format_duration_long(0) == "0h 00m 00s"
    assert format_duration_long(110) == "0h 01m 50s"
    assert format_duration_long(3725) == "1h 02m 05s"


def test_format_speed():
    assert format_speed(20.0) == "20.0 km/h (12.4 mph)"


def test_format_age():
    assert format_age(45.7) == "45s"
    assert format_age(750) == "12m 30s"
