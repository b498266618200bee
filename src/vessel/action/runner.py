"""
Action runner and context.

The runner is the single entry point for executing lifecycle operations.
Every `run` builds a fresh ActionContext, seeds it with the environment-wide
defaults (ui, env, action_runner, action_name), layers the caller's values
on top and runs the pipeline against it.
"""

from __future__ import annotations

import inspect as _inspect
import logging as _logging
import threading as _threading
import typing as _typing

import vessel.action.builder as builder

_logger = _logging.getLogger(__name__)

Runnable = _typing.Union[builder.Builder, builder.Pipeline, _typing.Callable[..., _typing.Any], str]
"""Anything Runner.run accepts: a stage, callable, Builder, Pipeline or action name."""


class ActionContext(_typing.MutableMapping[str, _typing.Any]):
    """
    Per-invocation key/value store threaded through pipeline stages.

    Never shared between runs; each Runner.run creates a new one.
    """

    def __init__(self, initial: _typing.Mapping[str, _typing.Any] | None = None) -> None:
        self._data: dict[str, _typing.Any] = dict(initial or {})

    def __getitem__(self, key: str) -> _typing.Any:
        return self._data[key]

    def __setitem__(self, key: str, value: _typing.Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> _typing.Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ActionContext({sorted(self._data)})"

    def to_dict(self) -> dict[str, _typing.Any]:
        """Shallow copy of the context's contents."""
        return dict(self._data)


class _CallableStage:
    """Adapts a one-argument callable `fn(context)` into a stage."""

    def __init__(self, fn: _typing.Callable[[ActionContext], _typing.Any]) -> None:
        self._fn = fn
        self.name = builder.stage_name(fn)

    def __call__(self, context: ActionContext, proceed: builder.Proceed) -> _typing.Any:
        self._fn(context)
        return proceed()


class Runner:
    """
    Runs pipelines with a freshly seeded context.

    Named actions can be registered on the runner and later run by name.
    """

    def __init__(
        self,
        defaults: _typing.Mapping[str, _typing.Any]
        | _typing.Callable[[], _typing.Mapping[str, _typing.Any]]
        | None = None,
    ) -> None:
        """
        Args:
            defaults: Values seeded into every context, or a callable
                returning them (evaluated on every run).
        """
        self._defaults = defaults
        self._actions: dict[str, builder.Builder | builder.Pipeline] = {}
        self._lock = _threading.Lock()

    def register(self, name: str, action: builder.Builder | builder.Pipeline) -> None:
        """Register a named action pipeline."""
        with self._lock:
            self._actions[name] = action

    def actions(self) -> list[str]:
        """Names of registered actions."""
        with self._lock:
            return sorted(self._actions)

    def run(
        self,
        action: Runnable,
        extra: _typing.Mapping[str, _typing.Any] | None = None,
        **kwargs: _typing.Any,
    ) -> ActionContext:
        """
        Run an action against a new context.

        Args:
            action: A stage, a one-argument callable, a Builder, a Pipeline,
                or the name of a registered action.
            extra: Values merged over the defaults; caller values win.
            **kwargs: More caller values, applied after `extra`.

        Returns:
            The context after the pipeline finished.

        Raises:
            KeyError: If `action` is a name that is not registered.
            PipelineError: If a stage failed.
        """
        name = action if isinstance(action, str) else builder.stage_name(action)
        pipeline = self._to_pipeline(action)

        context = ActionContext(self._seed())
        context["action_runner"] = self
        context["action_name"] = name
        context.update(extra or {})
        context.update(kwargs)

        _logger.debug("Running action: %s", context["action_name"])
        return pipeline.run(context)

    def _seed(self) -> _typing.Mapping[str, _typing.Any]:
        if self._defaults is None:
            return {}
        if callable(self._defaults):
            return self._defaults()
        return self._defaults

    def _to_pipeline(self, action: Runnable) -> builder.Pipeline:
        if isinstance(action, str):
            with self._lock:
                registered = self._actions.get(action)
            if registered is None:
                raise KeyError(f"No action registered under the name {action!r}")
            action = registered
        if isinstance(action, builder.Pipeline):
            return action
        if isinstance(action, builder.Builder):
            return action.to_pipeline()
        if isinstance(action, type):
            return builder.Pipeline([action()])
        if not callable(action):
            raise TypeError(f"Cannot run {action!r}: not a stage, callable or pipeline")
        return builder.Pipeline([_as_stage(action)])


def _as_stage(fn: _typing.Callable[..., _typing.Any]) -> _typing.Any:
    """Wrap one-argument callables; stages pass through unchanged."""
    try:
        signature = _inspect.signature(fn)
    except (TypeError, ValueError):
        return fn
    positional = [
        p
        for p in signature.parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty
    ]
    has_varargs = any(p.kind == p.VAR_POSITIONAL for p in signature.parameters.values())
    if len(positional) == 1 and not has_varargs:
        return _CallableStage(fn)
    return fn
