"""
Action pipelines.

A pipeline is an ordered list of stages run in the onion (wrap) model.
Each stage is a callable taking the shared context and a `proceed`
continuation:

    def timed(context, proceed):
        start = time.monotonic()
        try:
            return proceed()
        finally:
            context["elapsed"] = time.monotonic() - start

Code before `proceed()` runs on the way in, code after it on the way out.
Stages may also define `recover(context, error)`; when a failure escapes
the pipeline, `recover` is called on every stage that was entered,
innermost first, before the failure is re-raised.

Builders are mutable and cheap to edit; `to_pipeline()` folds the stages
into an immutable Pipeline once.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import vessel.errors as errors

if _typing.TYPE_CHECKING:
    import vessel.action.runner as runner

_logger = _logging.getLogger(__name__)

Proceed = _typing.Callable[[], _typing.Any]
Stage = _typing.Callable[["runner.ActionContext", Proceed], _typing.Any]

_Link = _typing.Callable[["runner.ActionContext", list[_typing.Any]], _typing.Any]


def stage_name(stage: _typing.Any) -> str:
    """Human readable name of a stage, used in errors and logs."""
    name = getattr(stage, "name", None)
    if isinstance(name, str) and name:
        return name
    if isinstance(stage, type):
        return stage.__qualname__
    qualname = getattr(stage, "__qualname__", None)
    if isinstance(qualname, str):
        return qualname
    return type(stage).__qualname__


# =============================================================================
# Builder
# =============================================================================


@_dataclasses.dataclass
class _Entry:
    stage: _typing.Any
    args: tuple[_typing.Any, ...] = ()
    kwargs: dict[str, _typing.Any] = _dataclasses.field(default_factory=dict)

    def matches(self, target: _typing.Any) -> bool:
        if self.stage is target:
            return True
        if isinstance(target, type) and isinstance(self.stage, target):
            return True
        return isinstance(target, str) and stage_name(self.stage) == target

    def instantiate(self) -> _typing.Any:
        if isinstance(self.stage, type):
            return self.stage(*self.args, **self.kwargs)
        if self.args or self.kwargs:
            raise TypeError(
                f"Arguments were given for stage {stage_name(self.stage)}, "
                "which is not a class"
            )
        return self.stage


class Builder:
    """
    Mutable, ordered list of stages.

    Stages can be given as instances or functions, or as classes together
    with constructor arguments; classes are instantiated when the pipeline
    is compiled. A Builder used as a stage is flattened in place.
    """

    def __init__(self, *stages: _typing.Any) -> None:
        self._entries: list[_Entry] = []
        for stage in stages:
            self.use(stage)

    def use(self, stage: _typing.Any, *args: _typing.Any, **kwargs: _typing.Any) -> Builder:
        """Append a stage. Returns self for chaining."""
        self._entries.append(_Entry(stage, args, kwargs))
        return self

    def insert(
        self,
        index: int,
        stage: _typing.Any,
        *args: _typing.Any,
        **kwargs: _typing.Any,
    ) -> Builder:
        self._entries.insert(index, _Entry(stage, args, kwargs))
        return self

    def insert_before(
        self,
        target: _typing.Any,
        stage: _typing.Any,
        *args: _typing.Any,
        **kwargs: _typing.Any,
    ) -> Builder:
        """Insert a stage before the first stage matching `target`."""
        return self.insert(self.index(target), stage, *args, **kwargs)

    def insert_after(
        self,
        target: _typing.Any,
        stage: _typing.Any,
        *args: _typing.Any,
        **kwargs: _typing.Any,
    ) -> Builder:
        """Insert a stage after the first stage matching `target`."""
        return self.insert(self.index(target) + 1, stage, *args, **kwargs)

    def replace(
        self,
        target: _typing.Any,
        stage: _typing.Any,
        *args: _typing.Any,
        **kwargs: _typing.Any,
    ) -> Builder:
        """Replace the first stage matching `target`."""
        self._entries[self.index(target)] = _Entry(stage, args, kwargs)
        return self

    def delete(self, target: _typing.Any) -> Builder:
        """Remove the first stage matching `target`."""
        del self._entries[self.index(target)]
        return self

    def index(self, target: _typing.Any) -> int:
        """
        Position of a stage.

        Args:
            target: An index, the stage object itself, a stage class, or a
                stage name.

        Raises:
            IndexError: If nothing matches.
        """
        if isinstance(target, int) and not isinstance(target, bool):
            if not -len(self._entries) <= target < len(self._entries):
                raise IndexError(f"Stage index out of range: {target}")
            return target % len(self._entries)
        for i, entry in enumerate(self._entries):
            if entry.matches(target):
                return i
        raise IndexError(f"No stage matching {stage_name(target)!r} in pipeline")

    def flatten(self) -> list[_typing.Any]:
        """Instantiated stages, with nested builders expanded in place."""
        stages: list[_typing.Any] = []
        for entry in self._entries:
            if isinstance(entry.stage, Builder):
                stages.extend(entry.stage.flatten())
            else:
                stages.append(entry.instantiate())
        return stages

    def to_pipeline(self) -> Pipeline:
        """Compile the current stages into an immutable Pipeline."""
        return Pipeline(self.flatten())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        names = ", ".join(stage_name(e.stage) for e in self._entries)
        return f"Builder([{names}])"


# =============================================================================
# Pipeline
# =============================================================================


class Pipeline:
    """
    Immutable compiled pipeline.

    The stages are right-folded into a single composed callable at
    construction. A Pipeline may itself be used as a stage: it runs its own
    stages, then proceeds.
    """

    def __init__(self, stages: _typing.Iterable[_typing.Any]) -> None:
        self._stages = tuple(stages)
        for stage in self._stages:
            if not callable(stage):
                raise TypeError(f"Pipeline stages must be callable, got {stage!r}")
        chain: _Link = _terminal
        for stage in reversed(self._stages):
            chain = _wrap(stage, chain)
        self._chain = chain

    @property
    def stages(self) -> tuple[_typing.Any, ...]:
        return self._stages

    @property
    def name(self) -> str:
        return "Pipeline(" + ", ".join(stage_name(s) for s in self._stages) + ")"

    def run(self, context: runner.ActionContext) -> runner.ActionContext:
        """
        Run every stage against `context`.

        Returns:
            The context, as left by the stages.

        Raises:
            PipelineError: If a stage raised. Every entered stage's
                `recover` has been called by the time this propagates.
        """
        entered: list[_typing.Any] = []
        try:
            self._chain(context, entered)
        except BaseException as e:
            _recover(entered, context, e)
            raise
        return context

    def __call__(self, context: runner.ActionContext, proceed: Proceed | None = None) -> _typing.Any:
        self.run(context)
        if proceed is not None:
            return proceed()
        return None

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        return f"<{self.name}>"


def _terminal(context: runner.ActionContext, entered: list[_typing.Any]) -> None:  # noqa: ARG001
    return None


def _wrap(stage: _typing.Any, inner: _Link) -> _Link:
    name = stage_name(stage)

    def link(context: runner.ActionContext, entered: list[_typing.Any]) -> _typing.Any:
        entered.append(stage)
        _logger.debug("Entering stage: %s", name)

        def proceed() -> _typing.Any:
            return inner(context, entered)

        try:
            result = stage(context, proceed)
        except errors.PipelineError:
            raise
        except Exception as e:
            raise errors.PipelineError(name, context, e) from e
        _logger.debug("Leaving stage: %s", name)
        return result

    return link


def _recover(
    entered: list[_typing.Any],
    context: runner.ActionContext,
    error: BaseException,
) -> None:
    for stage in reversed(entered):
        recover = getattr(stage, "recover", None)
        if recover is None:
            continue
        try:
            recover(context, error)
        except Exception as e:
            # The original failure still propagates; keep this one visible.
            _logger.exception("recover() of stage %s failed", stage_name(stage))
            error.add_note(f"recover() of stage {stage_name(stage)} also failed: {e!r}")
