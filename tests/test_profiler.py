from ledsync.profiler import Profiler


def _clock(values):
    iterator = iter(values)
    return lambda: next(iterator)


def test_report_lists_differences():
    profiler = Profiler(_clock([100, 105, 112]))
    profiler.add_timestamp()
    profiler.add_timestamp("a")
    profiler.add_timestamp("b")
    lines = profiler.report().splitlines()
    assert lines[0] == "===================="
    assert lines[1] == "100ms 105ms 112ms "
    assert "1. a: 5ms" in lines
    assert "2. b: 7ms" in lines
    assert lines[-1] == "===================="


def test_report_clears_entries():
    profiler = Profiler(_clock([1, 2]))
    profiler.add_timestamp("x")
    profiler.add_timestamp("y")
    profiler.report()
    assert profiler.entries == []
    second = profiler.report()
    assert "1." not in second


def test_entries_record_clock_and_message():
    profiler = Profiler(_clock([42]))
    profiler.add_timestamp("start")
    assert [(e.timestamp, e.message) for e in profiler.entries] == [(42, "start")]


def test_single_entry_has_no_differences():
    profiler = Profiler(_clock([9]))
    profiler.add_timestamp("only")
    report = profiler.report()
    assert "9ms " in report
    assert ". only:" not in report