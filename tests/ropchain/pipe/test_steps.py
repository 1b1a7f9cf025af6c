from typing import Optional, Tuple
import pytest

from ropchain.pipe.core import AbstractHandler, HandlerFunc, Result, ResultTracker, NOOP_HANDLER
from ropchain.pipe.chain import Chain
from ropchain.pipe.errors import InvalidStepError
from ropchain.pipe.steps import (
    Step, StepKind, classify, adapt,
    result_step, middleware, handler, handler_factory, manual, try_step, check, transform, tap,
)


class Doubler(AbstractHandler):
    def handle(self, result, tracker):
        tracker.last().set_value(result.value * 2)


def factory():
    return Doubler()


def two_args(result, tracker):
    pass


def three_args(result, tracker, nxt):
    pass


def on_result(result: Result) -> Result:
    return result


def wrap(nxt: AbstractHandler) -> AbstractHandler:
    return nxt


def side_effect(value) -> None:
    pass


def parse(value) -> Tuple[int, Optional[Exception]]:
    return int(value), None


def parse_plain_tuple(value) -> tuple:
    return value, None


def validate(value) -> Optional[Exception]:
    return None


def validate_union(value) -> ValueError | None:
    return None


def increment(value: int) -> int:
    return value + 1


def star_args(*values):
    pass


def four_args(a, b, c, d):
    pass


@pytest.mark.parametrize("obj,kind", [
    (factory, StepKind.FACTORY),
    (two_args, StepKind.HANDLER),
    (three_args, StepKind.MANUAL),
    (on_result, StepKind.RESULT),
    (wrap, StepKind.MIDDLEWARE),
    (side_effect, StepKind.TAP),
    (parse, StepKind.TRY),
    (parse_plain_tuple, StepKind.TRY),
    (validate, StepKind.CHECK),
    (validate_union, StepKind.CHECK),
    (increment, StepKind.TRANSFORM),
    (lambda v: v, StepKind.TRANSFORM),
    (Doubler(), StepKind.HANDLER_VALUE),
    (star_args, StepKind.INVALID),
    (four_args, StepKind.INVALID),
    (42, StepKind.INVALID),
    ("not a step", StepKind.INVALID),
    (Doubler, StepKind.INVALID),
])
def test_classify(obj, kind):
    assert classify(obj).kind == kind


def test_classify_keeps_tagged_steps():
    step = tap(lambda v: v)
    assert step.kind == StepKind.TAP
    assert classify(step) is step


def test_default_parameters_do_not_count():
    def scale(value, factor=2):
        return value * factor
    assert classify(scale).kind == StepKind.TRANSFORM


def test_tagged_steps_are_callable():
    @transform
    def add_one(value):
        return value + 1

    assert isinstance(add_one, Step)
    assert add_one.name == "add_one"
    assert add_one(1) == 2


def test_tagger_kinds():
    f = lambda *a: None
    assert result_step(f).kind == StepKind.RESULT
    assert middleware(f).kind == StepKind.MIDDLEWARE
    assert handler(f).kind == StepKind.HANDLER
    assert handler_factory(f).kind == StepKind.FACTORY
    assert manual(f).kind == StepKind.MANUAL
    assert try_step(f).kind == StepKind.TRY
    assert check(f).kind == StepKind.CHECK
    assert transform(f).kind == StepKind.TRANSFORM
    assert tap(f).kind == StepKind.TAP


def test_supervisory_flags():
    assert StepKind.RESULT.supervisory is True
    assert StepKind.INVALID.supervisory is True
    assert StepKind.MIDDLEWARE.supervisory is None
    for kind in (StepKind.HANDLER, StepKind.FACTORY, StepKind.MANUAL, StepKind.HANDLER_VALUE,
                 StepKind.TRY, StepKind.CHECK, StepKind.TRANSFORM, StepKind.TAP):
        assert kind.supervisory is False


def test_adapt_returns_middleware():
    h = adapt(transform(lambda v: v + 1))(NOOP_HANDLER)
    r = Result(1)
    h(r, ResultTracker(r))
    assert r.value == 2


def test_transform_replaces_payload():
    out = Chain(transform(lambda v: v * 3))(Result(2))
    assert out.value == 6
    assert out.failures == []


def test_try_step():
    @try_step
    def to_int(value):
        try:
            return int(value), None
        except ValueError as e:
            return None, e

    out = Chain(to_int)(Result("12"))
    assert out.value == 12
    assert not out.failed

    out = Chain(to_int)(Result("twelve"))
    assert out.value == "twelve"
    assert len(out.failures) == 1
    assert isinstance(out.failures[0], ValueError)


def test_check_leaves_payload():
    boom = ValueError("odd")
    odd_check = check(lambda v: boom if v % 2 else None)

    out = Chain(odd_check)(Result(3))
    assert out.value == 3
    assert out.failures == [boom]

    out = Chain(odd_check)(Result(4))
    assert out.failures == []


def test_tap_sees_value_and_changes_nothing():
    seen = []
    out = Chain(tap(seen.append))(Result("x"))
    assert seen == ["x"]
    assert out.value == "x"
    assert out.failures == [] and out.messages == []


def test_handler_writes_through_tracker():
    @handler
    def replace(result, tracker):
        tracker.write(Result(result.value + 100))

    seen = []
    out = Chain(replace, tap(seen.append))(Result(1))
    assert seen == [101]
    assert out.value == 101


def test_handler_value():
    out = Chain(Doubler(), Doubler())(Result(3))
    assert out.value == 12


def test_factory_is_lazy():
    calls = []

    def make():
        calls.append("made")
        return HandlerFunc(lambda r, t: r.add_message("ran"))

    c = Chain(handler_factory(make))
    assert calls == []

    out = c(Result())
    assert calls == ["made"]
    assert out.messages == ["ran"]

    failed = Result().add_failure(ValueError("earlier"))
    c(failed)
    assert calls == ["made"]


def test_manual_controls_next():
    seen = []

    @manual
    def forward(result, tracker, nxt):
        result.add_message("forwarded")
        nxt(tracker.last(), tracker)

    @manual
    def stop(result, tracker, nxt):
        result.add_message("stopped")

    out = Chain(forward, tap(seen.append))(Result(1))
    assert seen == [1]
    assert out.messages == ["forwarded"]

    seen.clear()
    out = Chain(stop, tap(seen.append), result_step(lambda r: r.add_message("never")))(Result(1))
    assert seen == []
    assert out.messages == ["stopped"]


def test_middleware_wraps_remainder():
    order = []

    @middleware
    def around(nxt):
        def handle(result, tracker):
            order.append("before")
            nxt(tracker.last(), tracker)
            order.append("after")
        return handle

    Chain(around, tap(lambda v: order.append("inner")))(Result())
    assert order == ["before", "inner", "after"]


def test_middleware_may_terminate_early():
    seen = []
    halt = middleware(lambda nxt: (lambda r, t: None))
    Chain(halt, tap(seen.append))(Result(1))
    assert seen == []


def test_result_step_replaces_tracker_value():
    replacement = Result("new")
    out = Chain(result_step(lambda r: replacement))(Result("old"))
    assert out is replacement


def test_result_step_returning_none_keeps_result():
    original = Result("same")
    out = Chain(result_step(lambda r: None))(original)
    assert out is original


def test_invalid_step_records_and_continues():
    seen = []
    out = Chain(42, result_step(lambda r: r.add_message("after")), tap(seen.append))(Result(1))

    assert len(out.failures) == 1
    assert isinstance(out.failures[0], InvalidStepError)
    assert out.failures[0].step_type == "int"
    assert out.messages == ["invalid step type: int", "after"]
    # non-supervisory steps are skipped once the failure is recorded
    assert seen == []


def test_invalid_step_error_is_new_per_run():
    c = Chain(42)
    first = c(Result(1)).failures[0]
    second = c(Result(2)).failures[0]
    assert isinstance(first, InvalidStepError)
    assert isinstance(second, InvalidStepError)
    assert first is not second


@pytest.mark.parametrize("make_step", [
    lambda calls: transform(lambda v: calls.append("transform")),
    lambda calls: try_step(lambda v: (calls.append("try"), None)),
    lambda calls: check(lambda v: calls.append("check")),
    lambda calls: tap(lambda v: calls.append("tap")),
    lambda calls: handler(lambda r, t: calls.append("handler")),
    lambda calls: handler_factory(lambda: calls.append("factory")),
    lambda calls: manual(lambda r, t, n: calls.append("manual")),
])
def test_non_supervisory_steps_skip_after_failure(make_step):
    calls = []
    reached = []
    failed = Result("v").add_failure(ValueError("earlier"))
    out = Chain(make_step(calls), result_step(lambda r: reached.append(True)))(failed)
    assert calls == []
    assert reached == [True]
    assert len(out.failures) == 1


def test_handler_value_skips_after_failure():
    failed = Result(5).add_failure(ValueError("earlier"))
    out = Chain(Doubler())(failed)
    assert out.value == 5
