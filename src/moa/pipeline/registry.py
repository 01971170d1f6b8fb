"""
=============================================================================
PIPELINE REGISTRY
=============================================================================

Binds (method, path) pairs to pipelines and validates them on the way in.

=============================================================================
FAIL AT REGISTRATION, NOT AT REQUEST TIME
=============================================================================

    registry.register("GET", "/greet", [], router)
        → EmptyPipeline            nothing to run

    registry.register("GET", "/greet", [check_auth, load_name], router)
        → MissingTerminator        nothing can ever respond

    registry.register("GET", "/greet", [..., respond_greeting], router)
    registry.register("GET", "/greet", [...], router)
        → DuplicateRoute           first registration stays in place

A misconfigured route never serves a single request.

=============================================================================
MATCHING
=============================================================================

Lookup is an exact match on (METHOD, normalized path). Normalizing means
a leading slash and no trailing slash, so "/greet", "greet" and "/greet/"
are the same route. There are no path parameters or wildcards.

=============================================================================
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import logging
import threading

from .pipeline import Pipeline
from ..errors import DuplicateRoute, EmptyPipeline, MissingTerminator


logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """'/greet/' → '/greet', 'greet' → '/greet', '' → '/'."""
    stripped = path.strip("/")
    return "/" + stripped if stripped else "/"


@dataclass(frozen=True)
class PipelineId:
    """Identity of a registered pipeline: its route."""

    method: str
    path: str

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


class PipelineRegistry:
    """
    Route table of (method, path) → Pipeline.

    Registration normally happens at startup, but lookups come from many
    request threads, so every access to the table takes the lock.
    """

    def __init__(self):
        self._pipelines: Dict[PipelineId, Pipeline] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_id(method: str, path: str) -> PipelineId:
        return PipelineId(method.upper(), normalize_path(path))

    def _build(self, pipeline_id: PipelineId, stages: Iterable, error_stage) -> Pipeline:
        """Validate and construct, without touching the table."""
        pipeline = Pipeline(stages, error_stage, name=str(pipeline_id))
        if not pipeline.stages:
            raise EmptyPipeline(pipeline_id.method, pipeline_id.path)
        if not pipeline.terminators:
            raise MissingTerminator(pipeline_id.method, pipeline_id.path)
        return pipeline

    def register(self, method: str, path: str, stages: Iterable, error_stage) -> PipelineId:
        """
        Register a new pipeline.

        Args:
            method: HTTP method (any case)
            path: Route path
            stages: Stages in execution order (at least one terminator)
            error_stage: Error router for this route

        Returns:
            The PipelineId of the new route

        Raises:
            DuplicateRoute: (method, path) is already registered
            EmptyPipeline: stages is empty
            MissingTerminator: no stage is marked as a terminator
        """
        pipeline_id = self.make_id(method, path)
        pipeline = self._build(pipeline_id, stages, error_stage)

        with self._lock:
            if pipeline_id in self._pipelines:
                raise DuplicateRoute(pipeline_id.method, pipeline_id.path)
            self._pipelines[pipeline_id] = pipeline

        logger.debug(f"Registered {pipeline!r}")
        return pipeline_id

    def replace(self, method: str, path: str, stages: Iterable, error_stage) -> PipelineId:
        """
        Register a pipeline, replacing any existing one for the same route.

        The new pipeline is validated before the old one is touched, so a
        bad replacement leaves the original serving.
        """
        pipeline_id = self.make_id(method, path)
        pipeline = self._build(pipeline_id, stages, error_stage)

        with self._lock:
            replaced = pipeline_id in self._pipelines
            self._pipelines[pipeline_id] = pipeline

        logger.debug(f"{'Replaced' if replaced else 'Registered'} {pipeline!r}")
        return pipeline_id

    def unregister(self, method: str, path: str) -> bool:
        """Remove a route. Returns False if it was not registered."""
        with self._lock:
            return self._pipelines.pop(self.make_id(method, path), None) is not None

    def lookup(self, method: str, path: str) -> Optional[Pipeline]:
        """Exact-match lookup. None when nothing is registered."""
        with self._lock:
            return self._pipelines.get(self.make_id(method, path))

    def routes(self) -> List[PipelineId]:
        """All registered routes, sorted by path then method."""
        with self._lock:
            return sorted(self._pipelines, key=lambda pid: (pid.path, pid.method))

    def __contains__(self, pipeline_id: object) -> bool:
        with self._lock:
            return pipeline_id in self._pipelines

    def __len__(self) -> int:
        with self._lock:
            return len(self._pipelines)
