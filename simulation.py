import logging
from dataclasses import dataclass

from kinetics import InvalidReadingError, ReadingCollector, calculate_rate_constant, parse_volume
from scheduler import ManualScheduler

log = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Welcome to the Ester Hydrolysis Virtual Lab! In this simulation, you will determine "
    "the rate constant of the acid-catalyzed hydrolysis of an ester.",

    "Step 1: Gather your reagents. You will need a solution of ethyl acetate, a solution of "
    "hydrochloric acid (catalyst), and a standard solution of sodium hydroxide.",

    "Step 2: Prepare the reaction mixture. Pipette 10 mL of ethyl acetate solution into a clean, "
    "dry conical flask. Then, add 10 mL of 0.5 M HCl solution to the same flask. "
    "(Click 'Next Step' to simulate mixing).",

    "Step 3: Start the timer immediately upon mixing the reactants. This is crucial for "
    "determining the initial concentration and subsequent readings. (Click 'Start Reaction' button).",

    "Step 4: Take initial reading (t=0). Immediately withdraw 5 mL of the reaction mixture and add "
    "it to a separate conical flask containing about 20 mL of distilled water and 2-3 drops of "
    "phenolphthalein indicator. Titrate this solution against the standard 0.1 M NaOH solution from "
    "the burette until a permanent faint pink color appears. Record the burette reading.",

    "Step 5: Continue taking readings at regular intervals (e.g., every 10 minutes). For each "
    "reading, withdraw 5 mL of the reaction mixture, dilute, and titrate with NaOH. Record the time "
    "and burette reading. (Click 'Take Reading' for each new time interval).",

    "Step 6: You will take readings at 0, 10, 20, 30, 40, and 50 minutes. After taking all "
    "readings, we will proceed to data analysis. (Simulating all readings now...)",

    "Step 7: Data collection complete. Now, click 'Analyze Data' to calculate the rate constant.",

    "Analysis: The reaction is pseudo-first order. We will use the integrated rate law: "
    "<i>k</i> = (2.303 / <i>t</i>) &middot; log((V<sub>&infin;</sub> &minus; V<sub>0</sub>) / "
    "(V<sub>&infin;</sub> &minus; V<sub>t</sub>)), where V<sub>0</sub>, V<sub>t</sub> and "
    "V<sub>&infin;</sub> are the volumes of NaOH consumed at time 0, time t, and infinite time "
    "(after complete hydrolysis). For this simulation, we'll assume V<sub>&infin;</sub> is the "
    "maximum possible titration volume at complete hydrolysis. In a real lab, you'd heat to ensure "
    "complete hydrolysis for V<sub>&infin;</sub>.",

    "Congratulations! You have completed the virtual lab simulation. The calculated rate constant "
    "for the hydrolysis of ethyl acetate is: ",
)

FINAL_STEP = len(INSTRUCTIONS) - 1

# Steps the narrative can reach through the advance control
SETUP_STEP = 2
START_STEP = 3
FIRST_READING_STEP = 4
READING_STEP = 5
SIMULATED_STEP = 6
COLLECTED_STEP = 7
ANALYSIS_STEP = 8

STOPWATCH_RESET = "00:00:00"
STOPWATCH_DONE = "00:00:00 (Simulation Complete)"


@dataclass(frozen=True)
class LabConfig:
    """Fixed parameters of one lab run"""
    v_infinity: float = 7.0
    schedule: tuple = (0, 10, 20, 30, 40, 50)
    synthetic_volumes: tuple = (2.5, 3.8, 4.9, 5.7, 6.2, 6.5)
    bulk_delay: float = 2.0
    analysis_delay: float = 3.0
    stopwatch_interval: float = 0.01

    def __post_init__(self):
        if self.v_infinity <= 0:
            raise ValueError("v_infinity must be positive")
        if not self.schedule or self.schedule[0] != 0:
            raise ValueError("schedule must start at t=0")
        if any(b <= a for a, b in zip(self.schedule, self.schedule[1:])):
            raise ValueError("schedule times must strictly increase")
        if len(self.synthetic_volumes) != len(self.schedule):
            raise ValueError("need one synthetic volume per scheduled timepoint")
        for volume in self.synthetic_volumes:
            try:
                parse_volume(volume)
            except InvalidReadingError as exc:
                raise ValueError(f"bad synthetic volume: {exc}") from None
        if self.bulk_delay < 0 or self.analysis_delay < 0 or self.stopwatch_interval <= 0:
            raise ValueError("delays must be non-negative and the stopwatch interval positive")


@dataclass(frozen=True)
class ControlState:
    visible: bool = False
    enabled: bool = True


HIDDEN = ControlState()
SHOWN = ControlState(visible=True)
DISABLED = ControlState(visible=True, enabled=False)


@dataclass(frozen=True)
class UIState:
    """Everything the host UI needs to draw one moment of the lab"""
    step: int
    instruction: str
    advance_label: str
    advance: ControlState
    setup: ControlState
    start: ControlState
    request: ControlState
    input: ControlState
    submit: ControlState
    simulate: ControlState
    table: ControlState
    analyze: ControlState
    results: ControlState
    input_placeholder: str
    stopwatch: str
    result_text: str
    rows: tuple


def format_elapsed(seconds):
    """mm:ss:cc, minutes are not wrapped at 60"""
    centis = int(max(seconds, 0.0) * 100)
    minutes, centis = divmod(centis, 6000)
    secs, centis = divmod(centis, 100)
    return f"{minutes:02d}:{secs:02d}:{centis:02d}"


class Stopwatch:
    """Cosmetic elapsed-time display refreshed by a periodic task"""

    def __init__(self, scheduler, interval, on_tick=None):
        self.scheduler = scheduler
        self.interval = interval
        self.on_tick = on_tick
        self.text = STOPWATCH_RESET
        self._started_at = None
        self._handle = None

    @property
    def running(self):
        return self._handle is not None

    def start(self):
        if self.running:
            return
        self._started_at = self.scheduler.time()
        self._handle = self.scheduler.call_every(self.interval, self._tick)

    def _tick(self):
        self.text = format_elapsed(self.scheduler.time() - self._started_at)
        if self.on_tick:
            self.on_tick()

    def stop(self, text=None):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if text is not None:
            self.text = text


class LabSimulation:
    """One guided run of the ester hydrolysis lab.

    Every action either changes the narrative and returns the new UIState
    (also pushed to subscribers), or is ignored and returns the current one.
    """

    def __init__(self, config=None, scheduler=None):
        self.config = config or LabConfig()
        self.scheduler = scheduler or ManualScheduler()
        self.collector = ReadingCollector(self.config.schedule, self.config.synthetic_volumes)
        self.stopwatch = Stopwatch(self.scheduler, self.config.stopwatch_interval, self._emit)

        self.step = 0
        self.reaction_started = False
        self.input_open = False
        self.result = None
        self._pending = None
        self._listeners = []

    def subscribe(self, listener):
        self._listeners.append(listener)

    def unsubscribe(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Narrative

    def advance(self):
        if self.step >= FINAL_STEP:
            log.debug("Advance ignored, already at the last instruction")
            return self.ui
        if self.step > START_STEP or (self.step == START_STEP and not self.reaction_started):
            log.debug("Advance ignored at step %d", self.step)
            return self.ui
        self.step += 1
        if self.step == FIRST_READING_STEP:
            self.input_open = True
        log.info("Advanced to step %d", self.step)
        return self._emit()

    def start_reaction(self):
        if self.reaction_started or self.step < START_STEP:
            log.debug("Start reaction ignored")
            return self.ui
        self.reaction_started = True
        self.stopwatch.start()
        log.info("Reaction started")
        return self._emit()

    # Readings

    def request_reading(self):
        if self.step != READING_STEP or self.input_open or self.collector.complete:
            log.debug("Reading request ignored")
            return self.ui
        self.input_open = True
        return self._emit()

    def submit_reading(self, raw):
        """Commit the value from the input control at the next scheduled time.

        Raises InvalidReadingError, leaving everything untouched, when the
        value is not a non-negative number.
        """
        if not self.input_open or self.step not in (FIRST_READING_STEP, READING_STEP):
            log.debug("Submit ignored, no reading is pending")
            return self.ui
        volume = parse_volume(raw)
        self.collector.commit(volume)
        self.input_open = False
        if self.collector.complete:
            self.stopwatch.stop(STOPWATCH_DONE)
            self.step = COLLECTED_STEP
            log.info("All readings collected")
        elif self.step == FIRST_READING_STEP:
            self.step = READING_STEP
        return self._emit()

    def simulate_readings(self):
        """Fill every remaining timepoint with the predefined readings."""
        if self.step not in (FIRST_READING_STEP, READING_STEP) or self.collector.complete:
            log.debug("Simulated readings ignored at step %d", self.step)
            return self.ui
        self.step = SIMULATED_STEP
        self.input_open = False
        self.collector.fill_synthetic()
        self.stopwatch.stop(STOPWATCH_DONE)
        self._defer(self.config.bulk_delay, self._finish_collection)
        log.info("Simulated remaining readings")
        return self._emit()

    def _finish_collection(self):
        self._pending = None
        if self.step != SIMULATED_STEP:
            return
        self.step = COLLECTED_STEP
        self._emit()

    # Analysis

    def analyze(self):
        if self.step != COLLECTED_STEP or self.result is not None:
            log.debug("Analyze ignored")
            return self.ui
        self.result = calculate_rate_constant(self.collector.readings, self.config.v_infinity)
        self.step = ANALYSIS_STEP
        self._defer(self.config.analysis_delay, self._reveal_final)
        return self._emit()

    def _reveal_final(self):
        self._pending = None
        if self.step != ANALYSIS_STEP:
            return
        self.step = FINAL_STEP
        log.info("Lab complete")
        self._emit()

    def _defer(self, delay, callback):
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self.scheduler.call_later(delay, callback)

    def close(self):
        self.stopwatch.stop()
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._listeners.clear()

    # View

    @property
    def ui(self):
        step = self.step
        collecting = step in (FIRST_READING_STEP, READING_STEP) and not self.collector.complete

        instruction = INSTRUCTIONS[step]
        if step == FINAL_STEP and self.result is not None:
            if self.result.defined:
                instruction += f"{self.result.rate_constant:.4f} min⁻¹"
            else:
                instruction += self.result.describe()

        if step < START_STEP or (step == START_STEP and self.reaction_started):
            advance = SHOWN
        else:
            advance = HIDDEN

        if collecting:
            request = SHOWN if step == READING_STEP and not self.input_open else DISABLED
        else:
            request = HIDDEN
        entry = SHOWN if collecting and self.input_open else HIDDEN

        next_time = self.collector.next_time
        placeholder = f"Enter reading for t={next_time} min" if next_time is not None else ""

        return UIState(
            step=step,
            instruction=instruction,
            advance_label="Begin Simulation" if step == 0 else "Next Step",
            advance=advance,
            setup=SHOWN if step >= SETUP_STEP else HIDDEN,
            start=(DISABLED if self.reaction_started else SHOWN) if step >= START_STEP else HIDDEN,
            request=request,
            input=entry,
            submit=entry,
            simulate=SHOWN if collecting else HIDDEN,
            table=SHOWN if step >= FIRST_READING_STEP else HIDDEN,
            analyze=SHOWN if step == COLLECTED_STEP and self.result is None else HIDDEN,
            results=SHOWN if self.result is not None else HIDDEN,
            input_placeholder=placeholder,
            stopwatch=self.stopwatch.text,
            result_text=self.result.describe() if self.result is not None else "",
            rows=self.collector.readings,
        )

    def _emit(self):
        state = self.ui
        for listener in list(self._listeners):
            listener(state)
        return state
