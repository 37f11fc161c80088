"""
Pipeline composer: run an ordered sequence of transforms over one image.

Stage i's output is stage i+1's primary input. Side parameters for a stage
are declared by the caller when the stage is built and passed as keyword
arguments on every run.

Guarantees:
- The caller's input and every intermediate are handed on as read-only
  views, so no stage can mutate what an earlier stage produced. Running the
  same pipeline twice on the same input gives identical results.
- The first failing stage stops the run. The error is re-raised as a
  StageError naming the stage's position and declared name, with the
  original exception chained. Nothing is retried and no partial result is
  returned.
- A Pipeline is itself callable as ``pipeline(image)``, so pipelines nest.

Usage:
    from regionflow.processing import Pipeline, Stage
    from regionflow.transforms import gaussian, threshold
    from regionflow.measure import label, measure_regions

    pipeline = Pipeline([
        Stage(gaussian, {'sigma': 2.0}),
        threshold,
        (label, {'connectivity': 2}),
        measure_regions,
    ], name='blobs')

    result = pipeline.run(image, keep_intermediates=True)
    records = result.output
    for step in result.intermediates:
        print(step.index, step.name, getattr(step.value, 'dtype', None))
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import tqdm

from regionflow.core.errors import InvalidParameterError, StageError
from regionflow.transforms.base import (
    OutputContract,
    check_parameter,
    conforms_to,
    output_contract,
    transform_name,
)
from regionflow.utils.config import get_cpu_worker_count, is_debug_enabled
from regionflow.utils.logging import ProcessingTimer, get_logger

logger = get_logger(__name__)


def _read_only(value: Any) -> Any:
    """Read-only view of an array; other values pass through."""
    if isinstance(value, np.ndarray):
        view = value.view()
        view.setflags(write=False)
        return view
    return value


@dataclass(frozen=True)
class Stage:
    """
    One step of a pipeline.

    Attributes:
        func: Transform called as func(image, **params)
        params: Side parameters supplied by the caller for this stage
        name: Declared name (default: the transform's declared name)
    """
    func: Callable
    params: Mapping[str, Any] = field(default_factory=dict)
    name: Optional[str] = None

    def __post_init__(self):
        if not callable(self.func):
            raise InvalidParameterError('func', self.func, "stage function must be callable")
        object.__setattr__(self, 'params', MappingProxyType(dict(self.params)))
        if self.name is None:
            object.__setattr__(self, 'name', transform_name(self.func))

    @property
    def contract(self) -> OutputContract:
        return output_contract(self.func)

    def run(self, value: Any) -> Any:
        return self.func(value, **self.params)

    def describe(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'params': dict(self.params),
            'output': self.contract.describe(),
        }


@dataclass(frozen=True)
class StageOutput:
    """Output of one stage, kept for diagnostics (arrays are read-only)."""
    index: int
    name: str
    value: Any
    contract: OutputContract


@dataclass(frozen=True)
class PipelineResult:
    """
    Result of one pipeline run.

    Attributes:
        output: Output of the final stage
        intermediates: Every stage's output in order when requested, else ()
        duration_seconds: Wall time of the run
    """
    output: Any
    intermediates: Tuple[StageOutput, ...] = ()
    duration_seconds: float = 0.0

    def stage_output(self, name: str) -> Any:
        """Value produced by the first stage with the given name."""
        for step in self.intermediates:
            if step.name == name:
                return step.value
        raise KeyError(f"No intermediate named '{name}' (run with keep_intermediates=True?)")


StageLike = Union[Stage, Callable, Tuple[Callable, Mapping[str, Any]]]


def as_stage(stage: StageLike) -> Stage:
    """Normalize a Stage, a bare callable or a (callable, params) tuple."""
    if isinstance(stage, Stage):
        return stage
    if isinstance(stage, tuple):
        if len(stage) != 2:
            raise InvalidParameterError('stage', stage, "tuples must be (callable, params)")
        func, params = stage
        return Stage(func, params)
    return Stage(stage)


class Pipeline:
    """
    Ordered, immutable sequence of stages.

    Args:
        stages: Stage objects, bare transforms or (transform, params) tuples
        name: Name used in logs and error messages
    """

    def __init__(self, stages: Iterable[StageLike], name: str = 'pipeline'):
        self._stages: Tuple[Stage, ...] = tuple(as_stage(s) for s in stages)
        if not self._stages:
            raise InvalidParameterError('stages', [], "a pipeline needs at least one stage")
        self.name = name
        self.__transform_name__ = name
        self.__output_contract__ = self._stages[-1].contract

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return self._stages

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        names = ' -> '.join(s.name for s in self._stages)
        return f"Pipeline({self.name!r}: {names})"

    def then(self, func: StageLike, **params) -> 'Pipeline':
        """Return a new pipeline with one more stage appended."""
        stage = as_stage(func)
        if params:
            stage = Stage(stage.func, {**stage.params, **params}, stage.name)
        return Pipeline(self._stages + (stage,), name=self.name)

    def describe(self) -> List[Dict[str, Any]]:
        """Stage plan: index, name, params and declared output per stage."""
        return [{'index': i, **stage.describe()} for i, stage in enumerate(self._stages)]

    def run(self, image: Any, keep_intermediates: bool = False) -> PipelineResult:
        """
        Execute every stage in order.

        Args:
            image: Input of the first stage (never modified)
            keep_intermediates: Also return every stage's output

        Returns:
            PipelineResult

        Raises:
            StageError: The first stage that failed, with the original error
                as __cause__
        """
        debug = is_debug_enabled()
        if logger.isEnabledFor(logging.DEBUG):
            for step in self.describe():
                logger.debug(
                    "%s[%d] %s params=%s -> %s",
                    self.name, step['index'], step['name'], step['params'], step['output'],
                )

        current = _read_only(image)
        outputs: List[StageOutput] = []
        last = len(self._stages) - 1

        with ProcessingTimer(logger, f"pipeline '{self.name}'", level=logging.DEBUG) as timer:
            for index, stage in enumerate(self._stages):
                try:
                    result = stage.run(current)
                except Exception as e:
                    raise StageError(index, stage.name, e, pipeline_name=self.name) from e

                if debug and not conforms_to(result, stage.contract):
                    logger.warning(
                        "%s[%d] %s: output does not match its declared contract (%s)",
                        self.name, index, stage.name, stage.contract.describe(),
                    )

                if keep_intermediates:
                    outputs.append(StageOutput(index, stage.name, _read_only(result), stage.contract))
                current = result if index == last else _read_only(result)

        if isinstance(current, np.ndarray) and not current.flags.writeable:
            # The last stage handed back the input or an earlier output
            current = current.copy()

        return PipelineResult(
            output=current,
            intermediates=tuple(outputs),
            duration_seconds=timer.duration or 0.0,
        )

    def __call__(self, image: Any) -> Any:
        return self.run(image).output

    def run_batch(
        self,
        images: Sequence[Any],
        workers: Optional[int] = 1,
        progress: bool = False,
    ) -> List[Any]:
        """
        Run the pipeline independently over several inputs.

        Runs share no state, so workers > 1 runs them on a thread pool. The
        output order always matches the input order.

        Args:
            images: Inputs, one pipeline run each
            workers: Thread count; None picks 80% of the CPU cores
            progress: Show a tqdm progress bar

        Returns:
            Final outputs in input order

        Raises:
            StageError: From the first failing run; pending runs are cancelled
        """
        images = list(images)
        if workers is None:
            workers = get_cpu_worker_count()
        check_parameter('workers', workers, minimum=1)
        workers = min(int(workers), max(1, len(images)))

        with ProcessingTimer(logger, f"batch '{self.name}' ({len(images)} images, {workers} workers)"):
            if workers == 1:
                return [
                    self(image)
                    for image in tqdm(images, desc=self.name, disable=not progress)
                ]

            outputs: List[Any] = [None] * len(images)
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(self, image): i for i, image in enumerate(images)}
                try:
                    for future in tqdm(
                        as_completed(futures), total=len(futures), desc=self.name, disable=not progress
                    ):
                        outputs[futures[future]] = future.result()
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise
            return outputs


def compose(*funcs: StageLike, name: str = 'pipeline') -> Pipeline:
    """Shorthand for Pipeline([...]) from positional stages."""
    return Pipeline(funcs, name=name)
