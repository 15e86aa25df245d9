"""
Compilation orchestration.

Owns the end-to-end compile of a CompileRequest:

    Idle -> Resolving -> Running -> Succeeded | Failed

1. Without an unsaved buffer, a cached artifact is returned immediately
   (no engine run).
2. The Virtual Source Resolver builds the SourceView; resolver errors fail the
   request before the engine is touched.
3. The engine runs on a worker thread, never on the caller's thread.
4. Engine output is stored in the Build Cache; engine failures store nothing.

Supersession (per project root + target file):

- "coalesce" (default): while a compile runs, new requests for the same target
  are parked in a single pending slot. A newer request replaces the parked one,
  and every parked caller receives the outcome of the one extra run made with
  the latest request once the current run finishes. Nothing is dropped and the
  cache ends up holding the output of the last submitted request.
- "reject": a request arriving while a compile runs fails at once with a Busy
  error the caller can retry after a debounce.

Runs are never interrupted. A caller that stops waiting cancels or ignores its
future; the run still completes and stores its artifact. Runs for one target
are serialized (one running job plus at most one pending job, taken in
submission order), so an older run can never store over the artifact of a
request submitted after it.
"""

import itertools
import os
import threading
import time
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv

from incipit.contexts.rendering.build_cache import BuildCache
from incipit.contexts.rendering.engine import Engine
from incipit.contexts.rendering.error_translator import translate
from incipit.contexts.rendering.logger import (
    _log_debug,
    _log_info,
    _log_warning,
    log_compilation_result,
    log_compilation_start,
)
from incipit.contexts.rendering.models import CompileOutcome, CompileRequest, CompileState
from incipit.contexts.rendering.source_resolver import VirtualSourceResolver
from incipit.exceptions import BusyError, EngineFailure, IncipitError
from incipit.utils.event_logging import log_compile_event
from incipit.utils.paths import canonical_root, normalize_relative
from incipit.utils.pdf_processing import page_count

load_dotenv()
COMPILE_WORKERS = int(os.getenv("COMPILE_WORKERS", "2"))
COMPILE_SUPERSESSION = os.getenv("COMPILE_SUPERSESSION", "coalesce")

SUPERSESSION_POLICIES = ("coalesce", "reject")
EVENT_SOURCE = "orchestrator"

TargetKey = Tuple[str, str]


@dataclass
class _Job:
    request: CompileRequest
    sequence: int
    futures: List[Future] = field(default_factory=list)


@dataclass
class _TargetSlot:
    state: CompileState = CompileState.IDLE
    running: bool = False
    pending: Optional[_Job] = None


def _deliver(
    futures: List[Future],
    outcome: Optional[CompileOutcome] = None,
    exception: Optional[BaseException] = None,
) -> None:
    for future in futures:
        # Callers may abandon a compile by cancelling their future
        if future.cancelled():
            continue
        try:
            if exception is not None:
                future.set_exception(exception)
            else:
                future.set_result(outcome)
        except InvalidStateError:
            continue


class CompilationOrchestrator:
    """
    Runs compiles on a worker pool with per-target supersession.

    Args:
        engine: Typesetting backend
        cache: Build cache (default: a new BuildCache)
        resolver: Source resolver (default: a new VirtualSourceResolver)
        max_workers: Worker threads; different targets may compile concurrently
        supersession: "coalesce" or "reject"

    Example:
        with CompilationOrchestrator(LatexEngine()) as orchestrator:
            future = orchestrator.submit(CompileRequest(root, "main.tex", buffer))
            outcome = future.result()
    """

    def __init__(
        self,
        engine: Engine,
        cache: Optional[BuildCache] = None,
        resolver: Optional[VirtualSourceResolver] = None,
        max_workers: int = COMPILE_WORKERS,
        supersession: str = COMPILE_SUPERSESSION,
    ):
        if supersession not in SUPERSESSION_POLICIES:
            raise ValueError(
                f"Unknown supersession policy '{supersession}'. Available: {SUPERSESSION_POLICIES}"
            )

        self.engine = engine
        self.cache = cache or BuildCache()
        self.resolver = resolver or VirtualSourceResolver(build_dir_name=self.cache.build_dir_name)
        self.supersession = supersession

        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="incipit-compile"
        )
        self._lock = threading.Lock()
        self._slots: Dict[TargetKey, _TargetSlot] = {}
        self._sequence = itertools.count(1)

    def __enter__(self) -> "CompilationOrchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; with wait=True, let queued compiles finish."""
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _key(request: CompileRequest) -> TargetKey:
        return str(canonical_root(request.project_root)), normalize_relative(request.target_file)

    def state(self, project_root, target_file: str) -> CompileState:
        """Current state of the most recent compile for a target."""
        try:
            key = (str(canonical_root(project_root)), normalize_relative(target_file))
        except IncipitError:
            return CompileState.IDLE
        with self._lock:
            slot = self._slots.get(key)
            return slot.state if slot is not None else CompileState.IDLE

    def compile(self, request: CompileRequest, timeout: Optional[float] = None) -> CompileOutcome:
        """Blocking convenience around submit(); never call it from a UI thread."""
        return self.submit(request).result(timeout=timeout)

    def submit(self, request: CompileRequest) -> "Future[CompileOutcome]":
        """
        Dispatch a compile and return a future resolving to its CompileOutcome.

        The future never raises for taxonomy failures; they arrive as
        CompileOutcome.failed(...). Cache hits resolve before this returns.
        """
        future: Future = Future()

        try:
            key = self._key(request)
        except IncipitError as e:
            future.set_result(CompileOutcome.failed(translate(e)))
            return future

        with self._lock:
            slot = self._slots.setdefault(key, _TargetSlot())
            idle = not slot.running

        # Fast path: reuse the cached artifact of on-disk content
        if idle and request.unsaved_buffer is None:
            outcome = self._cached_outcome(request)
            if outcome is not None:
                future.set_result(outcome)
                return future

        with self._lock:
            sequence = next(self._sequence)
            if not slot.running:
                slot.running = True
                job = _Job(request, sequence, [future])
                decision = "run"
            elif self.supersession == "reject":
                decision = "reject"
            else:
                if slot.pending is None:
                    slot.pending = _Job(request, sequence, [future])
                else:
                    # Coalesce: the newest request replaces the parked one
                    slot.pending.request = request
                    slot.pending.sequence = sequence
                    slot.pending.futures.append(future)
                decision = "coalesce"

        if decision == "reject":
            error = BusyError("A compile for this target is already running", key[1])
            self._event(key, "compile_rejected", sequence=sequence)
            future.set_result(CompileOutcome.failed(translate(error)))
        elif decision == "coalesce":
            _log_debug(f"Coalesced compile #{sequence} for {key[1]} behind running compile")
            self._event(key, "compile_coalesced", sequence=sequence)
        else:
            try:
                self._executor.submit(self._drain, key, job)
            except RuntimeError:
                # Executor already shut down
                with self._lock:
                    slot.running = False
                error = BusyError("Compilation service is shut down", key[1])
                future.set_result(CompileOutcome.failed(translate(error)))
        return future

    def _cached_outcome(self, request: CompileRequest) -> Optional[CompileOutcome]:
        try:
            artifact = self.cache.lookup(request.project_root, request.target_file)
        except IncipitError as e:
            _log_warning(f"Cache lookup failed, compiling instead: {e}")
            return None

        if not BuildCache.is_fresh(artifact, request.target_file, request.unsaved_buffer):
            return None

        _log_info(f"Reusing cached artifact for {normalize_relative(request.target_file)}")
        return CompileOutcome.succeeded(artifact, from_cache=True)

    def _drain(self, key: TargetKey, job: _Job) -> None:
        """Worker loop for one target: run the job, then any coalesced follow-up."""
        with self._lock:
            slot = self._slots[key]
        while job is not None:
            try:
                outcome = self._run(key, slot, job)
            except Exception as e:
                # Unexpected bug: fail the waiting callers instead of hanging them
                _log_warning(f"Compile #{job.sequence} for {key[1]} crashed: {e!r}")
                self._set_state(slot, CompileState.FAILED)
                _deliver(job.futures, exception=e)
            else:
                _deliver(job.futures, outcome=outcome)

            with self._lock:
                job = slot.pending
                slot.pending = None
                if job is None:
                    slot.running = False

    def _set_state(self, slot: _TargetSlot, state: CompileState) -> None:
        with self._lock:
            slot.state = state

    def _run(self, key: TargetKey, slot: _TargetSlot, job: _Job) -> CompileOutcome:
        request = job.request
        target = key[1]
        start_time = time.time()

        log_compilation_start(target, key[0], job.sequence, request.unsaved_buffer is not None)
        self._event(key, "compile_started", sequence=job.sequence)

        self._set_state(slot, CompileState.RESOLVING)
        try:
            view = self.resolver.resolve(request)
        except (IncipitError, OSError) as e:
            return self._fail(key, slot, job, e, start_time)

        self._set_state(slot, CompileState.RUNNING)
        try:
            data = self.engine.compile(view)
            if not data:
                raise EngineFailure("Compilation produced no output")
        except Exception as e:
            # The engine is opaque; the translator classifies whatever it raises
            return self._fail(key, slot, job, e, start_time)

        # Runs for one target are serialized, so this run is the newest to store
        try:
            artifact = self.cache.store(request.project_root, target, data)
        except (IncipitError, OSError) as e:
            return self._fail(key, slot, job, e, start_time)

        elapsed = time.time() - start_time
        outcome = CompileOutcome.succeeded(artifact)
        self._set_state(slot, CompileState.SUCCEEDED)
        log_compilation_result(target, outcome, elapsed, page_count=page_count(artifact.data))
        self._event(
            key,
            "compile_succeeded",
            sequence=job.sequence,
            compilation_time_s=round(elapsed, 2),
            size_bytes=artifact.size,
        )
        return outcome

    def _fail(
        self,
        key: TargetKey,
        slot: _TargetSlot,
        job: _Job,
        error: BaseException,
        start_time: float,
    ) -> CompileOutcome:
        elapsed = time.time() - start_time
        outcome = CompileOutcome.failed(translate(error))
        self._set_state(slot, CompileState.FAILED)
        log_compilation_result(key[1], outcome, elapsed)
        self._event(
            key,
            "compile_failed",
            sequence=job.sequence,
            compilation_time_s=round(elapsed, 2),
            error_kind=outcome.error.kind.value,
            errors=outcome.error.errors[:5],
        )
        return outcome

    def _event(self, key: TargetKey, event_type: str, **extra_fields) -> None:
        build_dir = Path(key[0]) / self.cache.build_dir_name
        log_compile_event(build_dir, event_type, key[1], EVENT_SOURCE, **extra_fields)
