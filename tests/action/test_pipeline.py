"""Tests for Builder and Pipeline.

- Onion ordering of entry and exit work
- Failure wrapping and recover() ordering
- Builder editing operations
"""

import logging as _logging
import typing as _typing

import pytest as _pytest

import vessel.action as action
import vessel.errors as errors


class _Recorder:
    """Stage appending enter/exit/recover markers to context["log"]."""

    def __init__(self, label: str, *, fail: bool = False) -> None:
        self.label = label
        self.fail = fail
        self.name = f"Recorder({label})"

    def __call__(self, context: action.ActionContext, proceed: action.Proceed) -> _typing.Any:
        context["log"].append(f"{self.label}:in")
        if self.fail:
            raise RuntimeError(f"{self.label} broke")
        try:
            return proceed()
        finally:
            context["log"].append(f"{self.label}:out")

    def recover(self, context: action.ActionContext, error: BaseException) -> None:  # noqa: ARG002
        context["log"].append(f"{self.label}:recover")


class _Marker:
    """Stage class with constructor arguments."""

    def __init__(self, key: str, value: _typing.Any = True) -> None:
        self.key = key
        self.value = value

    def __call__(self, context: action.ActionContext, proceed: action.Proceed) -> _typing.Any:
        context[self.key] = self.value
        return proceed()


def _context() -> action.ActionContext:
    return action.ActionContext({"log": []})


class TestPipelineOrdering:
    """Onion-model execution."""

    def test_entry_forward_exit_reverse(self) -> None:
        """Pre-work runs in order, post-work in reverse."""
        pipeline = action.Pipeline([_Recorder("A"), _Recorder("B"), _Recorder("C")])

        context = pipeline.run(_context())

        assert context["log"] == ["A:in", "B:in", "C:in", "C:out", "B:out", "A:out"]

    def test_failure_unwinds_and_recovers_innermost_first(self) -> None:
        """A failing stage unwinds entered stages and recovers them in reverse."""
        pipeline = action.Pipeline([_Recorder("A"), _Recorder("B"), _Recorder("C", fail=True)])
        context = _context()

        with _pytest.raises(errors.PipelineError):
            pipeline.run(context)

        assert context["log"] == [
            "A:in",
            "B:in",
            "C:in",
            "B:out",
            "A:out",
            "C:recover",
            "B:recover",
            "A:recover",
        ]

    def test_stages_after_failure_never_run(self) -> None:
        """Stages past the failing one are not entered or recovered."""
        pipeline = action.Pipeline([_Recorder("A", fail=True), _Recorder("B")])
        context = _context()

        with _pytest.raises(errors.PipelineError):
            pipeline.run(context)

        assert context["log"] == ["A:in", "A:recover"]

    def test_stage_may_short_circuit(self) -> None:
        """Not calling proceed() stops the chain without error."""

        def stop(context: action.ActionContext, proceed: action.Proceed) -> None:  # noqa: ARG001
            context["log"].append("stop")

        pipeline = action.Pipeline([stop, _Recorder("never")])

        assert pipeline.run(_context())["log"] == ["stop"]

    def test_empty_pipeline(self) -> None:
        """An empty pipeline returns the context unchanged."""
        context = _context()

        assert action.Pipeline([]).run(context) is context

    def test_non_callable_stage_rejected(self) -> None:
        """Pipelines only accept callables."""
        with _pytest.raises(TypeError):
            action.Pipeline(["not a stage"])

    def test_pipeline_as_stage(self) -> None:
        """A nested pipeline runs its stages, then proceeds."""
        inner = action.Pipeline([_Recorder("inner")])
        outer = action.Pipeline([_Recorder("A"), inner, _Recorder("B")])

        context = outer.run(_context())

        assert context["log"] == ["A:in", "inner:in", "inner:out", "B:in", "B:out", "A:out"]

    def test_entry_and_exit_are_logged(self, caplog: _pytest.LogCaptureFixture) -> None:
        """Stage boundaries are logged at debug level."""
        pipeline = action.Pipeline([_Recorder("A")])

        with caplog.at_level(_logging.DEBUG, logger="vessel.action.builder"):
            pipeline.run(_context())

        assert "Entering stage: Recorder(A)" in caplog.text
        assert "Leaving stage: Recorder(A)" in caplog.text


class TestPipelineErrors:
    """PipelineError wrapping."""

    def test_error_carries_stage_context_and_cause(self) -> None:
        """The wrapped error names the stage and chains the original."""
        pipeline = action.Pipeline([_Recorder("A"), _Recorder("B", fail=True)])
        context = _context()

        with _pytest.raises(errors.PipelineError) as exc_info:
            pipeline.run(context)

        error = exc_info.value
        assert error.stage == "Recorder(B)"
        assert error.context is context
        assert isinstance(error.original, RuntimeError)
        assert error.__cause__ is error.original
        assert "B broke" in str(error)

    def test_error_is_wrapped_once(self) -> None:
        """Outer stages do not re-wrap a PipelineError."""
        inner = action.Pipeline([_Recorder("deep", fail=True)])
        pipeline = action.Pipeline([_Recorder("A"), inner])

        with _pytest.raises(errors.PipelineError) as exc_info:
            pipeline.run(_context())

        assert exc_info.value.stage == "Recorder(deep)"
        assert isinstance(exc_info.value.original, RuntimeError)

    def test_failing_recover_does_not_mask_original(self, caplog: _pytest.LogCaptureFixture) -> None:
        """A recover() that raises is logged and noted; the original error wins."""

        class _BadRecover(_Recorder):
            def recover(self, context: action.ActionContext, error: BaseException) -> None:
                raise ValueError("recover exploded")

        pipeline = action.Pipeline([_BadRecover("A"), _Recorder("B", fail=True)])
        context = _context()

        with caplog.at_level(_logging.ERROR, logger="vessel.action.builder"):
            with _pytest.raises(errors.PipelineError) as exc_info:
                pipeline.run(context)

        assert exc_info.value.stage == "Recorder(B)"
        assert "B:recover" in context["log"]
        assert any("recover exploded" in note for note in exc_info.value.__notes__)
        assert "recover() of stage Recorder(A) failed" in caplog.text

    def test_keyboard_interrupt_is_not_wrapped(self) -> None:
        """Only Exceptions are wrapped; recover still runs."""

        def interrupt(context: action.ActionContext, proceed: action.Proceed) -> None:  # noqa: ARG001
            raise KeyboardInterrupt

        pipeline = action.Pipeline([_Recorder("A"), interrupt])
        context = _context()

        with _pytest.raises(KeyboardInterrupt):
            pipeline.run(context)

        assert context["log"] == ["A:in", "A:out", "A:recover"]


class TestBuilder:
    """Builder editing operations."""

    def test_classes_are_instantiated_with_arguments(self) -> None:
        """use(cls, *args) instantiates the class at compile time."""
        builder = action.Builder().use(_Marker, "booted", value="yes")

        context = builder.to_pipeline().run(action.ActionContext())

        assert context["booted"] == "yes"

    def test_arguments_for_instance_rejected(self) -> None:
        """Arguments only make sense for classes."""
        builder = action.Builder().use(_Recorder("A"), "extra")

        with _pytest.raises(TypeError):
            builder.to_pipeline()

    def test_insert_before_and_after(self) -> None:
        """Stages can be inserted relative to another by object, class or name."""
        a = _Recorder("A")
        builder = action.Builder(a, _Recorder("C"))

        builder.insert_after(a, _Recorder("B"))
        builder.insert_before("Recorder(A)", _Recorder("first"))
        builder.insert(len(builder), _Recorder("last"))

        context = builder.to_pipeline().run(_context())
        entered = [entry for entry in context["log"] if entry.endswith(":in")]
        assert entered == ["first:in", "A:in", "B:in", "C:in", "last:in"]

    def test_match_by_class(self) -> None:
        """A class target matches instances of that class and the class itself."""
        builder = action.Builder(_Recorder("A"), _Marker)

        assert builder.index(_Recorder) == 0
        assert builder.index(_Marker) == 1

    def test_replace_and_delete(self) -> None:
        """replace() swaps a stage; delete() removes it."""
        builder = action.Builder(_Recorder("A"), _Recorder("B"), _Recorder("C"))

        builder.replace("Recorder(B)", _Recorder("X"))
        builder.delete(0)

        assert repr(builder) == "Builder([Recorder(X), Recorder(C)])"

    def test_missing_target(self) -> None:
        """Unknown targets raise IndexError."""
        builder = action.Builder(_Recorder("A"))

        with _pytest.raises(IndexError):
            builder.delete("Recorder(Z)")
        with _pytest.raises(IndexError):
            builder.index(5)

    def test_negative_index(self) -> None:
        """Negative indexes count from the end."""
        builder = action.Builder(_Recorder("A"), _Recorder("B"))

        assert builder.index(-1) == 1

    def test_nested_builders_are_flattened(self) -> None:
        """A Builder used as a stage is expanded in place."""
        inner = action.Builder(_Recorder("B"), _Recorder("C"))
        builder = action.Builder(_Recorder("A"), inner)

        pipeline = builder.to_pipeline()

        assert [action.stage_name(s) for s in pipeline.stages] == [
            "Recorder(A)",
            "Recorder(B)",
            "Recorder(C)",
        ]

    def test_builder_edits_do_not_affect_compiled_pipeline(self) -> None:
        """to_pipeline() takes a snapshot."""
        builder = action.Builder(_Recorder("A"))
        pipeline = builder.to_pipeline()

        builder.use(_Recorder("B"))

        assert len(pipeline) == 1
        assert len(builder) == 2


class TestStageName:
    """stage_name()."""

    def test_names(self) -> None:
        """Explicit names win, then qualified names."""

        def plain(context: action.ActionContext, proceed: action.Proceed) -> None:
            pass

        assert action.stage_name(_Recorder("A")) == "Recorder(A)"
        assert action.stage_name(_Marker) == "_Marker"
        assert action.stage_name(_Marker("k")) == "_Marker"
        assert action.stage_name(plain).endswith("plain")
