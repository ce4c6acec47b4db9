"""
Debounced, coalescing, single-flight persistence of the edited document.

The coordinator watches a document for changes by fingerprint, waits for
edits to settle, then saves. At most one save request is in flight; edits
made while it is in flight are saved by an immediate follow-up request that
carries the version token the backend just confirmed.

Phases:
    IDLE     nothing to save
    PENDING  an edit is waiting for the debounce delay
    SAVING   a save request is in flight

A document replacement (reload or applied save response) is not an edit:
it sets ``suppress_next_change`` so the next change check ignores it.
"""

import asyncio
import copy
import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import msgpack

from .backends.base import PipelineBackend
from .context import SessionContext
from .exceptions import SessionClosedError
from .models import PipelineDocument

logger = logging.getLogger(__name__)


class SavePhase(str, Enum):
    """Phase of the auto-save state machine."""

    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"


@dataclass
class PendingSaveState:
    """Flags governing save coalescing."""

    in_flight: bool = False
    dirty_since_last_save: bool = False


def document_fingerprint(document: PipelineDocument) -> str:
    """
    Compute a SHA256 fingerprint of a document's wire form.

    Args:
        document: Document to fingerprint

    Returns:
        Hex string of SHA256 hash
    """
    serialized = msgpack.packb(document.to_wire(), use_bin_type=True)
    return hashlib.sha256(serialized).hexdigest()


def merge_save_response(response: PipelineDocument, local: PipelineDocument) -> PipelineDocument:
    """
    Combine a save response with locally edited content.

    Identity fields (uuid, info, issues) come from the response; structural
    fields (stages, configuration, ui_info) come from the local document so a
    response never clobbers edits.

    Args:
        response: Document returned by the backend
        local: Document whose edits must be preserved

    Returns:
        New merged document
    """
    return response.model_copy(
        update={
            "stages": [stage.model_copy(deep=True) for stage in local.stages],
            "configuration": [config.model_copy(deep=True) for config in local.configuration],
            "ui_info": copy.deepcopy(local.ui_info),
        },
        deep=True,
    )


class AutoSaveCoordinator:
    """
    Converges the edited document to the backend.

    The owner supplies ``get_document`` to read the current document and
    ``apply_document`` to install a merged save response; the owner must call
    ``document_replaced`` whenever it installs a new document.
    """

    def __init__(
        self,
        backend: PipelineBackend,
        context: SessionContext,
        get_document: Callable[[], Optional[PipelineDocument]],
        apply_document: Callable[[PipelineDocument], None],
        save_delay: float = 1.0,
        watch_interval: float = 0.25,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            backend: Backend receiving save requests
            context: Shared context (error sink, save-in-progress flag)
            get_document: Returns the current document, or None
            apply_document: Installs a merged save response as the document
            save_delay: Debounce delay in seconds
            watch_interval: Seconds between background change checks
        """
        self._backend = backend
        self._context = context
        self._get_document = get_document
        self._apply_document = apply_document
        self._save_delay = save_delay
        self._watch_interval = watch_interval

        self._state = PendingSaveState()
        self._phase = SavePhase.IDLE
        self._suppress_next_change = False
        self._replacement_fingerprint: str | None = None
        self._last_fingerprint: str | None = None
        self._generation = 0
        self._closed = False

        self._watch_task: asyncio.Task | None = None
        self._debounce_task: asyncio.Task | None = None
        self._save_task: asyncio.Task | None = None

    @property
    def phase(self) -> SavePhase:
        return self._phase

    @property
    def state(self) -> PendingSaveState:
        return PendingSaveState(
            in_flight=self._state.in_flight,
            dirty_since_last_save=self._state.dirty_since_last_save,
        )

    @property
    def suppress_next_change(self) -> bool:
        return self._suppress_next_change

    def start(self) -> None:
        """
        Start the background change watch.

        Raises:
            RuntimeError: If no event loop is running
            SessionClosedError: If the coordinator was closed
        """
        if self._closed:
            raise SessionClosedError("Auto-save coordinator is closed")
        if self._watch_task is not None:
            return
        loop = asyncio.get_running_loop()
        self._watch_task = loop.create_task(self._watch_loop())
        logger.info(f"Started document watch (interval: {self._watch_interval}s)")

    def notify_change(self) -> bool:
        """
        Check the document for changes now.

        Returns:
            True if an edit was detected and a save scheduled
        """
        return self._detect_change()

    def document_replaced(self, document: PipelineDocument | None, external: bool = True) -> None:
        """
        Record that the owner installed a new document.

        The next change check ignores the replacement. An external
        replacement (a reload) also drops pending edits of the previous
        document and invalidates the response of any in-flight save.

        Args:
            document: The newly installed document
            external: False when installing a merged save response
        """
        self._suppress_next_change = True
        self._replacement_fingerprint = (
            document_fingerprint(document) if document is not None else None
        )
        self._cancel_debounce()

        if external:
            self._generation += 1
            self._state.dirty_since_last_save = False
            if not self._state.in_flight:
                self._phase = SavePhase.IDLE

    async def save_now(self) -> bool:
        """
        Save the current document immediately.

        Suppressed while another save is in flight.

        Returns:
            True if a save ran and succeeded, False if it was suppressed or
            failed (failures are recorded in the error sink)

        Raises:
            SessionClosedError: If the coordinator was closed
        """
        if self._closed:
            raise SessionClosedError("Auto-save coordinator is closed")
        if self._save_in_progress():
            logger.debug("Save already in progress, manual save suppressed")
            return False
        if self._get_document() is None:
            return False

        self._cancel_debounce()
        task = self._start_save()
        return await task

    async def close(self) -> None:
        """
        Stop watching and cancel the pending debounce.

        A save already in flight is allowed to finish, but its response is
        not applied.
        """
        if self._closed:
            return
        self._closed = True

        tasks = [task for task in (self._watch_task, self._debounce_task) if task is not None]
        for task in tasks:
            task.cancel()
        self._watch_task = None
        self._debounce_task = None
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._save_task is not None and not self._save_task.done():
            await asyncio.gather(self._save_task, return_exceptions=True)
        logger.info("Stopped auto-save")

    def _detect_change(self) -> bool:
        if self._closed:
            return False
        document = self._get_document()
        if document is None:
            return False

        fingerprint = document_fingerprint(document)
        if self._suppress_next_change:
            self._suppress_next_change = False
            if fingerprint == self._replacement_fingerprint:
                self._last_fingerprint = fingerprint
                return False

        if fingerprint == self._last_fingerprint:
            return False

        self._last_fingerprint = fingerprint
        self._mark_dirty()
        return True

    def _mark_dirty(self) -> None:
        self._state.dirty_since_last_save = True
        self._cancel_debounce()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounce())
        if not self._state.in_flight:
            self._phase = SavePhase.PENDING
        logger.debug(f"Edit detected, save scheduled in {self._save_delay}s")

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    async def _debounce(self) -> None:
        await asyncio.sleep(self._save_delay)
        self._debounce_task = None
        if self._save_in_progress():
            # The in-flight save picks up the dirty flag when it completes
            logger.debug("Debounce elapsed during save, deferring to in-flight save")
            return
        self._start_save()

    def _save_in_progress(self) -> bool:
        if self._state.in_flight or self._context.save_operation_in_progress:
            return True
        return self._save_task is not None and not self._save_task.done()

    def _start_save(self) -> asyncio.Task:
        # Claim the single flight before the task gets to run
        self._state.in_flight = True
        self._context.save_operation_in_progress = True
        self._phase = SavePhase.SAVING
        self._save_task = asyncio.get_running_loop().create_task(
            self._run_saves(self._generation)
        )
        return self._save_task

    async def _run_saves(self, generation: int) -> bool:
        while True:
            document = self._get_document()
            if document is None:
                self._finish_request()
                self._phase = SavePhase.IDLE
                return False

            snapshot = document.model_copy(deep=True)
            self._last_fingerprint = document_fingerprint(snapshot)
            self._state.in_flight = True
            self._state.dirty_since_last_save = False
            self._context.save_operation_in_progress = True
            self._phase = SavePhase.SAVING
            logger.debug(f"Saving pipeline '{snapshot.name}' (uuid {snapshot.uuid})")

            try:
                response = await self._backend.save_pipeline_config(snapshot.name, snapshot)
            except Exception as e:
                self._finish_request()
                self._state.dirty_since_last_save = True
                self._phase = SavePhase.PENDING if self._debounce_task else SavePhase.IDLE
                self._context.errors.record(e, f"save pipeline '{snapshot.name}'")
                return False

            self._finish_request()
            if self._closed:
                return True

            if generation != self._generation:
                current = self._get_document()
                if self._replaced_by_pre_save_version(current, snapshot):
                    # The reload fetched the version this save superseded
                    generation = self._generation
                    self._detect_change()
                    dirty = self._state.dirty_since_last_save
                    merged = merge_save_response(response, current if dirty else snapshot)
                    logger.info(
                        f"Saved pipeline '{merged.name}' (uuid {merged.uuid}), "
                        f"reloaded copy was older than the save"
                    )
                    self._apply_document(merged)
                    if not dirty:
                        self._phase = SavePhase.IDLE
                        return True
                    continue

                logger.warning(
                    f"Dropping save response for '{snapshot.name}': document was replaced"
                )
                if self._state.dirty_since_last_save and self._debounce_task is None:
                    # Edits to the replacement deferred to this save
                    generation = self._generation
                    continue
                self._phase = SavePhase.PENDING if self._debounce_task else SavePhase.IDLE
                return True

            # Pick up edits the watch has not seen yet
            self._detect_change()
            dirty = self._state.dirty_since_last_save
            local = self._get_document() if dirty else snapshot
            merged = merge_save_response(response, local)
            logger.info(f"Saved pipeline '{merged.name}' (uuid {merged.uuid})")
            self._apply_document(merged)

            if not dirty:
                self._phase = SavePhase.IDLE
                return True

            logger.debug("Document changed during save, saving latest state")

    @staticmethod
    def _replaced_by_pre_save_version(
        current: Optional[PipelineDocument], snapshot: PipelineDocument
    ) -> bool:
        return (
            current is not None
            and current.name == snapshot.name
            and current.uuid == snapshot.uuid
        )

    def _finish_request(self) -> None:
        self._state.in_flight = False
        self._context.save_operation_in_progress = False

    async def _watch_loop(self) -> None:
        try:
            while not self._closed:
                await asyncio.sleep(self._watch_interval)
                self._detect_change()
        except asyncio.CancelledError:
            logger.debug("Document watch cancelled")
            raise
