from cloudclip.timeservice import HOUR_MS, ManualClock, TimeService


def test_now_shifts_utc_by_offset():
    clock = ManualClock(1_000)
    ts = TimeService(utc_offset_hours=8, clock=clock)
    assert ts.now() == 1_000 + 8 * HOUR_MS


def test_to_civil_matches_now_convention():
    clock = ManualClock(123_456)
    ts = TimeService(utc_offset_hours=8, clock=clock)
    assert ts.to_civil(clock()) == ts.now()


def test_zero_offset_is_plain_utc():
    ts = TimeService(utc_offset_hours=0, clock=ManualClock(42))
    assert ts.now() == 42


def test_format_renders_civil_wall_clock():
    # 1970-01-01 00:00 UTC is 08:00 on a UTC+8 wall clock
    ts = TimeService(utc_offset_hours=8, clock=ManualClock(0))
    assert ts.format(ts.now()) == "1970-01-01 08:00:00"


def test_hours_to_ms():
    assert TimeService.hours_to_ms(24) == 86_400_000
    assert TimeService.hours_to_ms(0.5) == 30 * 60 * 1000


def test_manual_clock_advance():
    clock = ManualClock(10)
    clock.advance(5)
    assert clock() == 15
    clock.set(0)
    assert clock() == 0
