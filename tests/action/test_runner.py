"""Tests for Runner and ActionContext."""

import typing as _typing

import pytest as _pytest

import vessel.action as action


def _capture(context: action.ActionContext) -> None:
    context["seen"] = context.to_dict()


class TestActionContext:
    """ActionContext mapping behavior."""

    def test_mapping_protocol(self) -> None:
        """The context behaves like a dict."""
        context = action.ActionContext({"a": 1})
        context["b"] = 2
        del context["a"]

        assert dict(context) == {"b": 2}
        assert len(context) == 1
        assert context.get("missing") is None

    def test_to_dict_is_a_copy(self) -> None:
        """to_dict() does not alias the context."""
        context = action.ActionContext({"a": 1})

        copy = context.to_dict()
        copy["a"] = 2

        assert context["a"] == 1


class TestRunnerSeeding:
    """Context seeding on every run."""

    def test_defaults_and_runner_keys(self) -> None:
        """Defaults, action_runner and action_name are seeded."""
        runner = action.Runner(defaults={"ui": "the-ui", "env": "the-env"})

        context = runner.run(_capture)

        seen = context["seen"]
        assert seen["ui"] == "the-ui"
        assert seen["env"] == "the-env"
        assert seen["action_runner"] is runner
        assert seen["action_name"].endswith("_capture")

    def test_callable_defaults_evaluated_per_run(self) -> None:
        """A callable default source is read on every run."""
        counter = {"n": 0}

        def defaults() -> dict[str, _typing.Any]:
            counter["n"] += 1
            return {"run": counter["n"]}

        runner = action.Runner(defaults=defaults)

        assert runner.run(_capture)["seen"]["run"] == 1
        assert runner.run(_capture)["seen"]["run"] == 2

    def test_caller_values_win(self) -> None:
        """extra overrides defaults; keyword values override extra."""
        runner = action.Runner(defaults={"ui": "default", "a": 1})

        context = runner.run(_capture, {"ui": "caller", "action_name": "custom"}, a=2)

        assert context["seen"]["ui"] == "caller"
        assert context["seen"]["action_name"] == "custom"
        assert context["seen"]["a"] == 2

    def test_fresh_context_per_run(self) -> None:
        """Values written during one run do not leak into the next."""

        def write(context: action.ActionContext) -> None:
            context["written"] = True

        runner = action.Runner()
        runner.run(write)

        assert "written" not in runner.run(_capture)["seen"]

    def test_defaults_mapping_is_not_mutated(self) -> None:
        """Seeding copies the defaults."""
        defaults = {"a": 1}
        runner = action.Runner(defaults=defaults)

        runner.run(_capture, b=2)

        assert defaults == {"a": 1}


class TestRunnables:
    """The shapes of action Runner.run accepts."""

    def test_one_argument_callable(self) -> None:
        """fn(context) is wrapped into a stage."""
        context = action.Runner().run(lambda ctx: ctx.__setitem__("x", 1))

        assert context["x"] == 1

    def test_two_argument_stage(self) -> None:
        """A (context, proceed) callable is used as-is."""

        def stage(context: action.ActionContext, proceed: action.Proceed) -> _typing.Any:
            context["x"] = 2
            return proceed()

        assert action.Runner().run(stage)["x"] == 2

    def test_stage_class_is_instantiated(self) -> None:
        """A stage class with no arguments is instantiated."""

        class _Stage:
            def __call__(self, context: action.ActionContext, proceed: action.Proceed) -> _typing.Any:
                context["cls"] = True
                return proceed()

        assert action.Runner().run(_Stage)["cls"] is True

    def test_builder_and_pipeline(self) -> None:
        """Builders are compiled; pipelines run directly."""
        builder = action.Builder(action.EnvSet(a=1), action.EnvSet(b=2))
        runner = action.Runner()

        assert runner.run(builder)["b"] == 2
        assert runner.run(builder.to_pipeline())["a"] == 1

    def test_named_action(self) -> None:
        """Registered actions run by name with the name seeded."""
        runner = action.Runner()
        runner.register("greet", action.Builder(action.EnvSet(greeting="hi")))

        context = runner.run("greet")

        assert context["greeting"] == "hi"
        assert context["action_name"] == "greet"
        assert runner.actions() == ["greet"]

    def test_unknown_name(self) -> None:
        """Unknown action names raise KeyError."""
        with _pytest.raises(KeyError):
            action.Runner().run("nope")

    def test_not_runnable(self) -> None:
        """Non-callables are rejected."""
        with _pytest.raises(TypeError):
            action.Runner().run(42)  # type: ignore[arg-type]
