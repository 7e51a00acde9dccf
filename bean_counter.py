# fmt: off
from __future__ import annotations

import logging
import math
import unittest
from collections import deque
from collections.abc import MutableSequence, Sequence
from dataclasses import dataclass, field
from random import Random
from sys import argv, exit as sys_exit
from typing import Deque, Final, List, Optional, Tuple, TypeAlias

Offset: TypeAlias = int
Frequency: TypeAlias = int
# fmt: on


@dataclass(frozen=True)
class MachineConfig:
    MIN_SLOT_COUNT: Final[int] = 1
    DEFAULT_SLOT_COUNT: Final[int] = 10
    DEFAULT_BEAN_COUNT: Final[int] = 400

    SKILL_MEAN_FACTOR: Final[float] = 0.5
    SKILL_PROBABILITY: Final[float] = 0.5
    VACANT_X_POS: Final[int] = -1

    PROGRESS_DIVISIONS: Final[int] = 10
    HISTOGRAM_WIDTH: Final[int] = 50
    HISTOGRAM_CHAR: Final[str] = "o"

    LUCK_MODE: Final[str] = "luck"
    SKILL_MODE: Final[str] = "skill"
    LOG_FORMAT: Final[str] = "%(levelname)s: %(message)s"


@dataclass(eq=False)
class Bean:
    slot_count: int
    is_luck: bool
    rand: Random = field(repr=False)
    _skill_level: int = field(init=False, repr=False, default=0)
    x_pos: Offset = field(init=False, default=0)
    y_pos: int = field(init=False, default=0)
    _rights_left: int = field(init=False, repr=False, default=0)

    def __post_init__(self) -> None:
        if self.slot_count < MachineConfig.MIN_SLOT_COUNT:
            raise ValueError("Slot count must be positive.")
        self._skill_level = self._sample_skill_level()
        self.reset()

    @classmethod
    def create_instance(cls, slot_count: int, is_luck: bool, rand: Random) -> Bean:
        return cls(slot_count=slot_count, is_luck=is_luck, rand=rand)

    @property
    def skill_level(self) -> int:
        return self._skill_level

    def _sample_skill_level(self) -> int:
        mean = self.slot_count * MachineConfig.SKILL_MEAN_FACTOR
        p = MachineConfig.SKILL_PROBABILITY
        stdev = math.sqrt(self.slot_count * p * (1 - p))
        # Half-up rounding; values outside 0..slot_count are left unclamped.
        return math.floor(self.rand.gauss(0.0, 1.0) * stdev + mean + 0.5)

    def next_x_pos(self) -> Offset:
        if self.is_luck:
            self.x_pos += self.rand.randrange(2)
        elif self._rights_left > 0:
            self._rights_left -= 1
            self.x_pos += 1
        self.y_pos += 1
        return self.x_pos

    def reset(self) -> None:
        self.x_pos = 0
        self.y_pos = 0
        self._rights_left = self._skill_level


def make_beans(
    slot_count: int, bean_count: int, is_luck: bool, seed: Optional[int] = None
) -> List[Bean]:
    # One seed fixes every bean's random source.
    if bean_count < 0:
        raise ValueError("Bean count cannot be negative.")
    seeder = Random(seed)
    return [
        Bean.create_instance(slot_count, is_luck, Random(seeder.getrandbits(64)))
        for _ in range(bean_count)
    ]


def expected_slot_distribution(slot_count: int) -> List[float]:
    if slot_count < MachineConfig.MIN_SLOT_COUNT:
        raise ValueError("Slot count must be positive.")
    decisions = slot_count - 1
    return [math.comb(decisions, k) / 2**decisions for k in range(slot_count)]


@dataclass
class BeanCounterLogic:
    slot_count: int
    _slot_counts: MutableSequence[Frequency] = field(init=False, repr=False)
    _in_flight: MutableSequence[Optional[Bean]] = field(init=False, repr=False)
    _remaining: Deque[Bean] = field(init=False, repr=False)
    _beans: Sequence[Bean] = field(init=False, repr=False, default=())
    _steps: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        if self.slot_count < MachineConfig.MIN_SLOT_COUNT:
            raise ValueError("Slot count must be positive.")
        self._clear_state()

    @classmethod
    def create_instance(cls, slot_count: int) -> BeanCounterLogic:
        return cls(slot_count=slot_count)

    def _clear_state(self) -> None:
        self._slot_counts = [0] * self.slot_count
        self._in_flight = [None] * self.slot_count
        self._remaining = deque()
        self._steps = 0

    def reset(self, beans: Sequence[Bean]) -> None:
        if len({id(bean) for bean in beans}) != len(beans):
            raise ValueError("Each bean may appear only once in a run.")
        self._clear_state()
        self._beans = beans
        for bean in beans:
            bean.reset()
            self._remaining.append(bean)
        self._drop_next_bean()
        logging.info(
            f"Machine reset with {len(beans)} beans over {self.slot_count} slots."
        )

    def repeat(self) -> None:
        if self._beans:
            logging.info("Repeating the previous bean sequence.")
        self.reset(self._beans)

    def _drop_next_bean(self) -> None:
        if self._in_flight[0] is None and self._remaining:
            self._in_flight[0] = self._remaining.popleft()

    @property
    def is_running(self) -> bool:
        return bool(self._remaining) or self.in_flight_bean_count > 0

    @property
    def in_flight_bean_count(self) -> int:
        return sum(1 for bean in self._in_flight if bean is not None)

    @property
    def settled_bean_count(self) -> int:
        return sum(self._slot_counts)

    @property
    def step_count(self) -> int:
        return self._steps

    @property
    def slot_counts(self) -> Tuple[Frequency, ...]:
        return tuple(self._slot_counts)

    def advance_step(self) -> bool:
        if not self.is_running:
            return False

        last_row = self.slot_count - 1
        # Bottom-up so each bean moves into a row vacated this tick.
        for row in range(last_row, -1, -1):
            bean = self._in_flight[row]
            if bean is None:
                continue
            self._in_flight[row] = None
            if row == last_row:
                self._slot_counts[bean.x_pos] += 1
            else:
                bean.next_x_pos()
                self._in_flight[row + 1] = bean

        self._drop_next_bean()
        self._steps += 1
        logging.debug(
            f"Step {self._steps}: {len(self._remaining)} remaining, "
            f"{self.in_flight_bean_count} in flight, "
            f"{self.settled_bean_count} settled."
        )
        return self.is_running

    def run(self) -> int:
        if not self.is_running and self.settled_bean_count:
            logging.warning("Machine already drained; nothing to run.")
            return 0

        total = len(self._remaining) + self.in_flight_bean_count
        progress_step = max(1, total // MachineConfig.PROGRESS_DIVISIONS)
        start_step = self._steps
        running = self.is_running
        while running:
            settled_before = self.settled_bean_count
            running = self.advance_step()
            settled = self.settled_bean_count
            if settled != settled_before and settled % progress_step == 0:
                logging.info(f"Settled {settled}/{total} beans.")

        ticks = self._steps - start_step
        logging.info(f"Run complete: {total} beans settled in {ticks} steps.")
        return ticks

    def _check_slot_index(self, index: int) -> None:
        if not 0 <= index < self.slot_count:
            raise IndexError(f"Index {index} outside 0..{self.slot_count - 1}.")

    def get_slot_bean_count(self, index: int) -> Frequency:
        self._check_slot_index(index)
        return self._slot_counts[index]

    def get_in_flight_bean_x_pos(self, row: int) -> Offset:
        self._check_slot_index(row)
        bean = self._in_flight[row]
        return MachineConfig.VACANT_X_POS if bean is None else bean.x_pos

    def get_remaining_bean_count(self) -> int:
        return len(self._remaining)

    def get_average_slot_bean_count(self) -> float:
        return self.settled_bean_count / self.slot_count

    def _require_drained(self, operation: str) -> None:
        if self.is_running:
            raise RuntimeError(f"{operation} requires all beans to have settled.")

    def lower_half(self) -> None:
        self._require_drained("lower_half")
        for i, count in enumerate(self._slot_counts):
            self._slot_counts[i] = count - count // 2
        logging.info(f"Kept lower half: {self.settled_bean_count} beans remain.")

    def upper_half(self) -> None:
        self._require_drained("upper_half")
        for i, count in enumerate(self._slot_counts):
            self._slot_counts[i] = count // 2
        logging.info(f"Kept upper half: {self.settled_bean_count} beans remain.")


def format_slot_counts(logic: BeanCounterLogic) -> str:
    counts = logic.slot_counts
    peak = max(counts, default=0)
    width = MachineConfig.HISTOGRAM_WIDTH
    label_width = len(str(logic.slot_count - 1))
    count_width = len(str(peak))
    lines = []
    for i, count in enumerate(counts):
        bar_len = math.ceil(count / peak * width) if peak else 0
        bar = MachineConfig.HISTOGRAM_CHAR * bar_len
        lines.append(f"{i:>{label_width}} | {count:>{count_width}} {bar}".rstrip())
    lines.append(f"Average slot bean count: {logic.get_average_slot_bean_count():.2f}")
    return "\n".join(lines)


USAGE: Final[str] = (
    "Usage: bean_counter.py <luck|skill> [slot_count] [bean_count] "
    "[lower|upper|repeat] [--seed N] [--test]"
)
POST_OPERATIONS: Final[Tuple[str, ...]] = ("lower", "upper", "repeat")


@dataclass
class RunOptions:
    is_luck: bool
    slot_count: int = MachineConfig.DEFAULT_SLOT_COUNT
    bean_count: int = MachineConfig.DEFAULT_BEAN_COUNT
    post_operation: Optional[str] = None
    seed: Optional[int] = None


def parse_args(args: Sequence[str]) -> RunOptions:
    args = list(args)
    seed = None
    if "--seed" in args:
        idx = args.index("--seed")
        try:
            seed = int(args[idx + 1])
        except (IndexError, ValueError) as exc:
            raise ValueError("--seed requires an integer value.") from exc
        del args[idx : idx + 2]

    if not args or args[0] not in (MachineConfig.LUCK_MODE, MachineConfig.SKILL_MODE):
        raise ValueError(USAGE)
    options = RunOptions(is_luck=args[0] == MachineConfig.LUCK_MODE, seed=seed)

    numbers = [a for a in args[1:] if a not in POST_OPERATIONS]
    operations = [a for a in args[1:] if a in POST_OPERATIONS]
    if len(numbers) > 2 or len(operations) > 1:
        raise ValueError(USAGE)
    try:
        if numbers:
            options.slot_count = int(numbers[0])
        if len(numbers) > 1:
            options.bean_count = int(numbers[1])
    except ValueError as exc:
        raise ValueError(f"Slot and bean counts must be integers. {USAGE}") from exc
    if options.slot_count < MachineConfig.MIN_SLOT_COUNT or options.bean_count < 0:
        raise ValueError("Slot count must be positive and bean count non-negative.")
    if operations:
        options.post_operation = operations[0]
    return options


def run_machine(options: RunOptions) -> BeanCounterLogic:
    beans = make_beans(
        options.slot_count, options.bean_count, options.is_luck, options.seed
    )
    logic = BeanCounterLogic.create_instance(options.slot_count)
    logic.reset(beans)
    logic.run()

    if options.post_operation == "lower":
        logic.lower_half()
    elif options.post_operation == "upper":
        logic.upper_half()
    elif options.post_operation == "repeat":
        logic.repeat()
        logic.run()
    return logic


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=MachineConfig.LOG_FORMAT, force=True)


def main(args: Optional[Sequence[str]] = None) -> int:
    args = list(argv[1:] if args is None else args)
    setup_logging()
    try:
        options = parse_args(args)
        logic = run_machine(options)
    except (ValueError, RuntimeError) as exc:
        logging.error(f"Execution failed: {exc}")
        return 1
    print(format_slot_counts(logic))
    return 0


if __name__ == "__main__":
    if "--test" in argv:
        unittest.main(module="test_bean_counter", argv=[argv[0]])
    else:
        sys_exit(main())
