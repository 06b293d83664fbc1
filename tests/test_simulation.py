import pytest

from kinetics import InvalidReadingError, UNDEFINED_MESSAGE
from scheduler import ManualScheduler
from simulation import (FINAL_STEP, INSTRUCTIONS, STOPWATCH_DONE, LabConfig, LabSimulation,
                        format_elapsed)

SCHEDULE = [0, 10, 20, 30, 40, 50]


def make_lab(config=None):
    sched = ManualScheduler()
    return LabSimulation(config, sched), sched


def to_first_reading(lab):
    lab.advance()
    lab.advance()
    lab.advance()
    lab.start_reaction()
    return lab.advance()


def take_all_readings(lab, volumes=(2.5, 3.8, 4.9, 5.7, 6.2, 6.5)):
    lab.submit_reading(str(volumes[0]))
    for v in volumes[1:]:
        lab.request_reading()
        lab.submit_reading(str(v))


def test_initial_state():
    lab, _ = make_lab()
    ui = lab.ui
    assert ui.step == 0
    assert ui.instruction == INSTRUCTIONS[0]
    assert ui.advance_label == "Begin Simulation"
    assert ui.advance.visible
    assert not ui.setup.visible
    assert not ui.table.visible
    assert ui.stopwatch == "00:00:00"


def test_advance_reveals_setup_then_start():
    lab, _ = make_lab()
    ui = lab.advance()
    assert ui.step == 1
    assert ui.advance_label == "Next Step"
    assert not ui.setup.visible
    ui = lab.advance()
    assert ui.setup.visible
    assert not ui.start.visible
    ui = lab.advance()
    assert ui.step == 3
    assert ui.start.visible and ui.start.enabled
    assert not ui.advance.visible


def test_advance_waits_for_reaction_start():
    lab, _ = make_lab()
    for _ in range(3):
        lab.advance()
    assert lab.advance().step == 3
    ui = lab.start_reaction()
    assert ui.advance.visible
    assert not ui.start.enabled
    assert lab.advance().step == 4


def test_start_reaction_is_single_use():
    lab, sched = make_lab()
    for _ in range(3):
        lab.advance()
    lab.start_reaction()
    seen = []
    lab.subscribe(seen.append)
    lab.start_reaction()
    assert seen == []
    assert sched.pending == 1


def test_start_reaction_ignored_before_step_three():
    lab, _ = make_lab()
    lab.start_reaction()
    assert not lab.reaction_started
    assert not lab.stopwatch.running


def test_stopwatch_tracks_virtual_time():
    lab, sched = make_lab()
    to_first_reading(lab)
    sched.advance(61.5)
    assert lab.ui.stopwatch.startswith("01:01:")


@pytest.mark.parametrize("seconds, text", [
    (0, "00:00:00"),
    (1.25, "00:01:25"),
    (75.5, "01:15:50"),
    (3600, "60:00:00"),
])
def test_format_elapsed(seconds, text):
    assert format_elapsed(seconds) == text


def test_first_reading_step_opens_input():
    lab, _ = make_lab()
    ui = to_first_reading(lab)
    assert ui.step == 4
    assert ui.input.visible and ui.submit.visible
    assert ui.request.visible and not ui.request.enabled
    assert ui.table.visible
    assert ui.input_placeholder == "Enter reading for t=0 min"


def test_first_submit_moves_to_reading_step():
    lab, _ = make_lab()
    to_first_reading(lab)
    assert lab.request_reading().step == 4
    ui = lab.submit_reading("2.5")
    assert ui.step == 5
    assert not ui.advance.visible
    assert ui.request.visible and ui.request.enabled
    assert not ui.input.visible
    assert [(r.time, r.volume) for r in ui.rows] == [(0, 2.5)]


def test_request_reading_opens_next_timepoint():
    lab, _ = make_lab()
    to_first_reading(lab)
    lab.submit_reading("2.5")
    ui = lab.request_reading()
    assert ui.input.visible
    assert not ui.request.enabled
    assert ui.input_placeholder == "Enter reading for t=10 min"
    ui = lab.submit_reading("3.8")
    assert ui.step == 5
    assert ui.request.enabled


INVALID_INPUTS = ["-5", "abc", "", "nan"]


@pytest.mark.parametrize("raw", INVALID_INPUTS)
def test_invalid_reading_changes_nothing(raw):
    lab, _ = make_lab()
    to_first_reading(lab)
    lab.submit_reading("2.5")
    lab.request_reading()
    before = lab.ui
    with pytest.raises(InvalidReadingError):
        lab.submit_reading(raw)
    assert lab.ui == before
    assert len(lab.collector.readings) == 1


@pytest.mark.parametrize("raw", INVALID_INPUTS)
def test_invalid_first_reading_stays_on_step_four(raw):
    lab, _ = make_lab()
    to_first_reading(lab)
    before = lab.ui
    with pytest.raises(InvalidReadingError):
        lab.submit_reading(raw)
    assert lab.step == 4
    assert lab.collector.readings == ()
    assert lab.stopwatch.running
    assert lab.ui == before
    assert lab.submit_reading("2.5").step == 5


@pytest.mark.parametrize("raw", INVALID_INPUTS)
def test_invalid_last_reading_keeps_collecting(raw):
    lab, _ = make_lab()
    to_first_reading(lab)
    take_all_readings(lab, volumes=(2.5, 3.8, 4.9, 5.7, 6.2))
    lab.request_reading()
    before = lab.ui
    with pytest.raises(InvalidReadingError):
        lab.submit_reading(raw)
    assert lab.step == 5
    assert len(lab.collector.readings) == 5
    assert lab.stopwatch.running
    assert lab.ui == before
    assert lab.submit_reading("6.5").step == 7
    assert not lab.stopwatch.running


def test_submit_without_pending_reading_is_ignored():
    lab, _ = make_lab()
    assert lab.submit_reading("3").step == 0
    to_first_reading(lab)
    lab.submit_reading("2.5")
    lab.submit_reading("3.0")
    assert len(lab.collector.readings) == 1


def test_reading_times_are_schedule_prefixes():
    lab, _ = make_lab()
    to_first_reading(lab)
    for i, v in enumerate([2.5, 3.8, 4.9, 5.7, 6.2, 6.5]):
        if i:
            lab.request_reading()
        lab.submit_reading(v)
        assert [r.time for r in lab.collector.readings] == SCHEDULE[:i + 1]


def test_completing_readings_reveals_only_analyze():
    lab, sched = make_lab()
    to_first_reading(lab)
    take_all_readings(lab)
    ui = lab.ui
    assert ui.step == 7
    assert ui.analyze.visible
    assert ui.table.visible
    for control in (ui.advance, ui.request, ui.input, ui.submit, ui.simulate, ui.results):
        assert not control.visible
    assert not lab.stopwatch.running
    assert ui.stopwatch == STOPWATCH_DONE
    assert sched.pending == 0
    assert lab.request_reading() == ui


def test_simulated_readings_then_delayed_analysis_step():
    lab, sched = make_lab()
    to_first_reading(lab)
    ui = lab.simulate_readings()
    assert ui.step == 6
    assert not lab.stopwatch.running
    assert ui.stopwatch == STOPWATCH_DONE
    assert [(r.time, r.volume) for r in ui.rows] == list(zip(SCHEDULE, [2.5, 3.8, 4.9, 5.7, 6.2, 6.5]))
    assert not ui.input.visible and not ui.request.visible
    assert ui.table.visible
    assert not ui.analyze.visible
    sched.advance(1.5)
    assert lab.step == 6
    assert lab.analyze().step == 6
    assert lab.result is None
    sched.advance(0.5)
    assert lab.step == 7
    assert lab.ui.analyze.visible


def test_simulated_readings_keep_manual_ones():
    lab, _ = make_lab()
    to_first_reading(lab)
    lab.submit_reading("2.0")
    lab.request_reading()
    lab.submit_reading("3.0")
    lab.simulate_readings()
    assert [r.volume for r in lab.collector.readings] == [2.0, 3.0, 4.9, 5.7, 6.2, 6.5]
    assert [r.time for r in lab.collector.readings] == SCHEDULE


def test_advance_is_ignored_during_reading_flow():
    lab, _ = make_lab()
    to_first_reading(lab)
    assert lab.advance().step == 4
    lab.submit_reading("2.5")
    assert lab.advance().step == 5


def test_analyze_runs_once_and_reveals_final_step():
    lab, sched = make_lab()
    to_first_reading(lab)
    take_all_readings(lab)
    seen = []
    lab.subscribe(seen.append)
    ui = lab.analyze()
    first_result = lab.result
    assert lab.analyze() == ui
    assert lab.result is first_result
    assert len(seen) == 1
    assert sched.pending == 1
    assert ui.step == 8
    assert not ui.analyze.visible
    assert ui.results.visible
    assert ui.result_text.startswith("Calculated Rate Constant (k): ")
    sched.advance(3.0)
    assert lab.step == FINAL_STEP
    assert lab.ui.instruction == INSTRUCTIONS[-1] + f"{first_result.rate_constant:.4f} min⁻¹"
    assert sched.pending == 0


def test_advance_at_last_step_is_silent():
    lab, sched = make_lab()
    to_first_reading(lab)
    take_all_readings(lab)
    lab.analyze()
    sched.advance(3.0)
    before = lab.ui
    seen = []
    lab.subscribe(seen.append)
    for _ in range(3):
        assert lab.advance() == before
    assert lab.step == FINAL_STEP
    assert seen == []


def test_undefined_result_reaches_final_text():
    config = LabConfig(synthetic_volumes=(2.5, 7.0, 7.0, 7.0, 7.0, 7.0))
    lab, sched = make_lab(config)
    to_first_reading(lab)
    lab.simulate_readings()
    sched.advance(2.0)
    lab.analyze()
    assert not lab.result.defined
    assert lab.ui.result_text == UNDEFINED_MESSAGE
    sched.advance(3.0)
    assert lab.ui.instruction.endswith(UNDEFINED_MESSAGE)


def test_close_cancels_pending_continuation():
    lab, sched = make_lab()
    to_first_reading(lab)
    lab.simulate_readings()
    lab.close()
    sched.advance(10.0)
    assert lab.step == 6


def test_sessions_are_independent():
    first, _ = make_lab()
    second, _ = make_lab()
    to_first_reading(first)
    first.submit_reading("2.5")
    assert second.step == 0
    assert second.collector.readings == ()


@pytest.mark.parametrize("kwargs", [
    {"v_infinity": 0},
    {"schedule": (5, 10)},
    {"schedule": (0, 20, 10, 30, 40, 50)},
    {"synthetic_volumes": (1.0, 2.0)},
    {"stopwatch_interval": 0},
    {"synthetic_volumes": (2.5, 3.8, -4.9, 5.7, 6.2, 6.5)},
    {"synthetic_volumes": (2.5, 3.8, float("nan"), 5.7, 6.2, 6.5)},
])
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        LabConfig(**kwargs)
