"""
Built-in stages shared by providers.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import vessel.action.builder as builder
import vessel.action.runner as runner

_logger = _logging.getLogger(__name__)


class EnvSet:
    """Seeds values into the context, then proceeds."""

    def __init__(self, values: _typing.Mapping[str, _typing.Any] | None = None, **kwargs: _typing.Any) -> None:
        self._values = {**(values or {}), **kwargs}

    @property
    def name(self) -> str:
        return "EnvSet(" + ", ".join(sorted(self._values)) + ")"

    def __call__(self, context: runner.ActionContext, proceed: builder.Proceed) -> _typing.Any:
        context.update(self._values)
        return proceed()


class Call:
    """
    Runs an action, then a sub-pipeline chosen from its outcome.

    The callable action runs in its own context (a copy of the current one).
    `then(result, builder)` inspects the resulting context and adds stages to
    an empty builder; that sub-pipeline runs next, and its final context is
    merged back before the rest of the pipeline proceeds.

        def then(result, b):
            if not result["created"]:
                b.use(Create)

        Builder().use(Call(IsCreated, then)).use(Boot)
    """

    def __init__(
        self,
        action: runner.Runnable,
        then: _typing.Callable[[runner.ActionContext, builder.Builder], None],
    ) -> None:
        self._action = action
        self._then = then

    @property
    def name(self) -> str:
        return f"Call({builder.stage_name(self._action)})"

    def __call__(self, context: runner.ActionContext, proceed: builder.Proceed) -> _typing.Any:
        result = _run_nested(context, self._action)

        sub = builder.Builder()
        self._then(result, sub)
        if len(sub):
            _logger.debug("%s: running %d conditional stage(s)", self.name, len(sub))
            result = _run_nested(result, sub)

        context.update(result)
        return proceed()


def _run_nested(
    context: runner.ActionContext,
    action: runner.Runnable,
) -> runner.ActionContext:
    action_runner = context.get("action_runner")
    if not isinstance(action_runner, runner.Runner):
        action_runner = runner.Runner()
    return action_runner.run(action, context.to_dict())
