"""Background pipeline: extract, walk, pair, then write sidecar metadata into images.

A run goes through the states

    idle -> extracting -> walking -> resolving -> applying -> completed

and drops into `error_paused` whenever a sidecar cannot be read or an image
cannot be written. While paused the worker thread blocks until the foreground
acknowledges through `PipelineChannels`; nothing else happens meanwhile.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import threading
import uuid

from takeout_merge.config import Settings
from takeout_merge.errors import MetadataWriteError, SidecarParseError, TakeoutMergeError
from takeout_merge.extractor import extract_archive
from takeout_merge.pairing import Pair, create_pairs
from takeout_merge.scanner import scan_files
from takeout_merge.services.channels import (
    Acknowledge,
    CancelledEvent,
    DoneEvent,
    ErrorEvent,
    FailedEvent,
    PipelineChannels,
)
from takeout_merge.services.job_store import pipeline_jobs, now_ts
from takeout_merge.sidecar import SidecarMetadata, read_sidecar
from takeout_merge.utils.paths import normalize_user_path
from takeout_merge.writer import apply_metadata

Applier = Callable[[SidecarMetadata, Path], Any]
SidecarReader = Callable[[Path], SidecarMetadata]
UpdateCallback = Callable[..., None]


class PipelineState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    WALKING = "walking"
    RESOLVING = "resolving"
    APPLYING = "applying"
    ERROR_PAUSED = "error_paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {PipelineState.COMPLETED, PipelineState.FAILED, PipelineState.CANCELLED}


@dataclass
class PipelineContext:
    """Everything a run needs, passed explicitly to each stage."""
    archive_path: Path
    settings: Settings = field(default_factory=Settings)
    working_dir: Optional[Path] = None


@dataclass
class RunSummary:
    pairs: int = 0
    images_written: int = 0
    images_failed: int = 0
    images_without_sidecar: int = 0
    sidecars_without_image: int = 0
    sidecar_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class _RunCancelled(Exception):
    pass


class ReconcilePipeline:
    def __init__(self,
                 context: PipelineContext,
                 channels: PipelineChannels | None = None,
                 applier: Applier = apply_metadata,
                 reader: SidecarReader = read_sidecar,
                 on_update: UpdateCallback | None = None):
        self.context = context
        self.channels = channels or PipelineChannels()
        self.summary = RunSummary()
        self.state = PipelineState.IDLE
        self.transitions: List[PipelineState] = [PipelineState.IDLE]
        self._applier = applier
        self._reader = reader
        self._on_update = on_update

    def _update(self, **kwargs) -> None:
        if self._on_update is not None:
            self._on_update(**kwargs)

    def _set_state(self, state: PipelineState) -> None:
        if state == self.state:
            return
        logging.debug("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)
        self._update(state=state.value)

    # -- run ---------------------------------------------------------------

    def run(self) -> PipelineState:
        """Run the whole pipeline on the calling thread; return the final state."""
        ctx = self.context
        try:
            self._set_state(PipelineState.EXTRACTING)
            ctx.working_dir = extract_archive(ctx.archive_path)
            self._update(working_dir=str(ctx.working_dir))

            self._set_state(PipelineState.WALKING)
            files = scan_files(ctx.working_dir)
            self._update(total_files=len(files))

            self._set_state(PipelineState.RESOLVING)
            pairs = create_pairs(files, ctx.settings.edited_suffix)
        except (TakeoutMergeError, OSError) as exc:
            return self._fail(exc)

        self.summary.pairs = len(pairs)
        self._update(total_pairs=len(pairs), processed_pairs=0)

        try:
            for idx, key in enumerate(sorted(pairs), start=1):
                if self.channels.cancel_requested:
                    raise _RunCancelled()
                self._set_state(PipelineState.APPLYING)
                self._process_pair(pairs[key])
                self._update(processed_pairs=idx, summary=self.summary.to_dict())
        except _RunCancelled:
            logging.info("Pipeline cancelled")
            self._set_state(PipelineState.CANCELLED)
            self.channels.emit(CancelledEvent())
            return self.state

        logging.info("Pipeline complete: %s", self.summary.to_dict())
        self._set_state(PipelineState.COMPLETED)
        self._update(current_file=None, summary=self.summary.to_dict())
        self.channels.emit(DoneEvent(summary=self.summary.to_dict()))
        return self.state

    def _fail(self, exc: BaseException) -> PipelineState:
        logging.error("Pipeline failed: %s", exc)
        self._set_state(PipelineState.FAILED)
        self._update(error=str(exc))
        self.channels.emit(FailedEvent(error=str(exc)))
        return self.state

    # -- per pair ----------------------------------------------------------

    def _process_pair(self, pair: Pair) -> None:
        images = pair.images()
        if pair.sidecar is None:
            if images:
                logging.debug("No sidecar for %s, leaving %d image(s) untouched", pair.canonical_key, len(images))
                self.summary.images_without_sidecar += len(images)
            return
        if not images:
            logging.debug("Sidecar %s has no matching image", pair.sidecar)
            self.summary.sidecars_without_image += 1
            return

        ok, meta = self._attempt(pair.sidecar, lambda: self._reader(pair.sidecar),
                                 (OSError, SidecarParseError))
        if not ok:
            # nothing to write without metadata
            self.summary.sidecar_errors += 1
            return

        for image in images:
            ok, _ = self._attempt(image, lambda: self._applier(meta, image),
                                  (OSError, MetadataWriteError))
            if ok:
                self.summary.images_written += 1
            else:
                self.summary.images_failed += 1

    def _attempt(self, path: Path, action: Callable[[], Any],
                 recoverable: Tuple[type, ...]) -> Tuple[bool, Any]:
        """Run `action` until it succeeds or the operator moves on.

        Returns (True, result) on success and (False, None) when the operator
        acknowledged the failure without asking for a retry.
        """
        while True:
            self._update(current_file=str(path))
            try:
                return True, action()
            except recoverable as exc:
                ack = self._report(path, exc)
                if not ack.retry:
                    return False, None
                logging.info("Retrying %s", path)

    def _report(self, path: Path, exc: BaseException) -> Acknowledge:
        message = str(exc)
        logging.error("Failed on %s: %s", path, message)
        self._update(last_error={"path": str(path), "error": message})
        # the pause is published only once the channel accepts an acknowledgment
        self.channels.emit(ErrorEvent(path=Path(path), error=message),
                           before_publish=lambda: self._set_state(PipelineState.ERROR_PAUSED))

        ack = self.channels.wait_for_ack()
        if ack is None:
            raise _RunCancelled()
        self._set_state(PipelineState.APPLYING)
        return ack


# -- job registry ----------------------------------------------------------

_channels: Dict[str, PipelineChannels] = {}
_channels_lock = threading.Lock()


def get_channels(job_id: str) -> PipelineChannels | None:
    with _channels_lock:
        return _channels.get(job_id)


def prune_finished_jobs(older_than: float) -> List[str]:
    """Forget jobs (and their channels) that finished more than `older_than` seconds ago."""
    stale = pipeline_jobs.prune_finished(older_than)
    with _channels_lock:
        for job_id in stale:
            _channels.pop(job_id, None)
    if stale:
        logging.debug("Pruned %d finished pipeline job(s)", len(stale))
    return stale


def _job_updater(job_id: str) -> UpdateCallback:
    def update(**kwargs):
        last_error = kwargs.pop("last_error", None)
        if last_error is not None:
            pipeline_jobs.record_error(job_id, last_error["path"], last_error["error"])
        if kwargs:
            pipeline_jobs.update(job_id, **kwargs)
    return update


def _run(job_id: str, pipeline: ReconcilePipeline) -> None:
    pipeline_jobs.update(job_id, start_time=now_ts())
    try:
        state = pipeline.run()
    except Exception as exc:
        # a bug, not an expected pipeline error: still tell the foreground
        logging.exception("Pipeline job %s crashed", job_id)
        pipeline_jobs.update(job_id, state=PipelineState.FAILED.value, error=str(exc))
        pipeline.channels.emit(FailedEvent(error=str(exc)))
        state = PipelineState.FAILED
    pipeline_jobs.update(job_id, state=state.value, current_file=None, finished_time=now_ts())


def start_pipeline_job(archive: str,
                       settings: Settings | None = None,
                       applier: Applier = apply_metadata) -> str:
    """Start a pipeline run on a daemon thread and return its job id."""
    settings = settings or Settings()
    prune_finished_jobs(settings.job_retention)

    job_id = uuid.uuid4().hex
    context = PipelineContext(archive_path=Path(normalize_user_path(archive)),
                              settings=settings)
    channels = PipelineChannels()
    with _channels_lock:
        _channels[job_id] = channels
    pipeline_jobs.create(job_id, str(context.archive_path))
    pipeline = ReconcilePipeline(context, channels, applier=applier,
                                 on_update=_job_updater(job_id))
    threading.Thread(target=_run, args=(job_id, pipeline), daemon=True).start()
    return job_id
