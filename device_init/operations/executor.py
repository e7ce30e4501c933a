"""Executor for manifest operations.

Operations run one after the other, in manifest order, after filtering by
their ``when`` conditions. A ``state`` event follows every operation.
"""

import logging
import os
import queue
import subprocess
import threading
import time
from collections.abc import Generator, Iterator, Mapping, Sequence
from typing import IO, Any, cast

from device_init.config import Settings, get_settings
from device_init.flash.device import validate_drive
from device_init.flash.writer import BurnProgress, WriteResult, stream_image_to_drive
from device_init.image.filesystem import ImageFilesystem
from device_init.image.paths import resolve_location
from device_init.manifest.schema import (
    BurnOperation,
    CopyOperation,
    Operation,
    ReplaceOperation,
    RunScriptOperation,
)
from device_init.operations.events import (
    BurnEvent,
    Event,
    OutputEvent,
    ProgressStream,
    StateEvent,
)
from device_init.types import EventKind, VerificationMode

logger = logging.getLogger(__name__)

DRIVE_OPTION = "drive"


class OperationError(Exception):
    """Base exception for operation failures."""

    def __init__(self, message: str, code: str = "operation_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ScriptExecutionError(OperationError):
    """A run-script operation failed."""

    def __init__(self, script: str, reason: str, returncode: int | None = None) -> None:
        super().__init__(f"Script {script} failed: {reason}", code="script_failed")
        self.script = script
        self.returncode = returncode


def _copy(image: str, operation: CopyOperation, fs: ImageFilesystem) -> None:
    source = resolve_location(image, operation.source)
    destination = resolve_location(image, operation.destination)
    with fs.interact(source.image, source.partition) as handle:
        contents = handle.read_file(source.path)
    with fs.interact(destination.image, destination.partition) as handle:
        handle.write_file(destination.path, contents)
    logger.info("Copied %s to %s", source.path, destination.path)


def _replace(image: str, operation: ReplaceOperation, fs: ImageFilesystem) -> None:
    target = resolve_location(image, operation.file)
    with fs.interact(target.image, target.partition) as handle:
        contents = handle.read_file(target.path)
        handle.write_file(target.path, contents.replace(operation.search, operation.replacement))
    logger.info("Replaced %r in %s", operation.search, target.path)


_StreamLine = tuple[EventKind, str | None]


def _pump(stream: IO[str], kind: EventKind, lines: queue.Queue[_StreamLine]) -> None:
    with stream:
        for line in stream:
            lines.put((kind, line))
    lines.put((kind, None))


def _run_script(
    image: str, operation: RunScriptOperation, settings: Settings
) -> Iterator[Event]:
    script = os.path.join(image, operation.script)
    logger.info("Running %s %s", script, " ".join(operation.arguments))
    try:
        process = subprocess.Popen(
            [script, *operation.arguments],
            cwd=image,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise ScriptExecutionError(operation.script, str(e)) from e

    timeout_reason = f"timed out after {settings.script_timeout}s"
    deadline = time.monotonic() + settings.script_timeout
    lines: queue.Queue[_StreamLine] = queue.Queue()
    pumps = [
        threading.Thread(
            target=_pump, args=(cast(IO[str], stream), kind, lines), daemon=True
        )
        for stream, kind in (
            (process.stdout, EventKind.STDOUT),
            (process.stderr, EventKind.STDERR),
        )
    ]
    for pump in pumps:
        pump.start()

    try:
        # Lines are relayed as they arrive; stdout and stderr interleave
        open_streams = len(pumps)
        while open_streams:
            try:
                kind, line = lines.get(timeout=max(deadline - time.monotonic(), 0))
            except queue.Empty:
                raise ScriptExecutionError(operation.script, timeout_reason) from None
            if line is None:
                open_streams -= 1
            else:
                yield OutputEvent(kind=kind, data=line)

        try:
            returncode = process.wait(timeout=max(deadline - time.monotonic(), 0))
        except subprocess.TimeoutExpired:
            raise ScriptExecutionError(operation.script, timeout_reason) from None
        for pump in pumps:
            pump.join()
    finally:
        if process.poll() is None:
            logger.warning("Killing %s", script)
            process.kill()
            process.wait()

    if returncode != 0:
        raise ScriptExecutionError(
            operation.script,
            f"exited with status {returncode}",
            returncode=returncode,
        )


def _relay_burn(
    writer: Generator[BurnProgress, None, WriteResult],
) -> Generator[Event, None, WriteResult]:
    while True:
        try:
            progress = next(writer)
        except StopIteration as stop:
            return stop.value
        yield BurnEvent(progress=progress)


def _burn(
    image: str,
    operation: BurnOperation,
    options: Mapping[str, Any],
    settings: Settings,
) -> Iterator[Event]:
    drive = options.get(DRIVE_OPTION)
    if not drive:
        raise OperationError("Burn operation requires a 'drive' option", code="missing_drive")

    source = os.path.join(image, operation.image) if operation.image else image
    info = validate_drive(
        str(drive),
        check_mount=settings.check_mount,
        allow_regular_file=settings.allow_regular_file_drives,
    )
    result = yield from _relay_burn(
        stream_image_to_drive(
            source,
            info.path,
            verification_mode=VerificationMode(settings.verification_mode),
            block_size=settings.burn_block_size,
        )
    )
    logger.info(
        "Burned %d bytes to %s (verification: %s)",
        result.bytes_written,
        info.path,
        result.verification_result.value,
    )


def run_operations(
    image: str,
    operations: Sequence[Operation],
    options: Mapping[str, Any] | None = None,
    *,
    fs: ImageFilesystem,
    settings: Settings | None = None,
) -> Iterator[Event]:
    """Run operations, yielding their events.

    Args:
        image: Path of the image.
        operations: Operations to run, in order.
        options: Caller options matched against ``when`` conditions; the
            burn target is taken from ``options["drive"]``.
        fs: Filesystem accessor.
        settings: Settings; defaults are loaded when not provided.

    Yields:
        Script output and burn progress, and a StateEvent after each
        operation.

    Raises:
        OperationError: An operation failed.
        ImageFilesystemError: Reading or writing the image failed.
        DriveValidationError: The burn target was rejected.
        WriteError: Writing the drive failed.
    """
    options = options or {}
    if settings is None:
        settings = get_settings()

    selected = [operation for operation in operations if operation.applies_to(options)]
    total = len(selected)
    for done, operation in enumerate(selected, start=1):
        logger.debug("Operation %d/%d: %s", done, total, operation.command)
        if isinstance(operation, CopyOperation):
            _copy(image, operation, fs)
        elif isinstance(operation, ReplaceOperation):
            _replace(image, operation, fs)
        elif isinstance(operation, RunScriptOperation):
            yield from _run_script(image, operation, settings)
        elif isinstance(operation, BurnOperation):
            yield from _burn(image, operation, options, settings)
        else:
            raise OperationError(f"Unsupported operation: {operation!r}", code="unsupported")

        yield StateEvent(operation=operation, percentage=done / total * 100)


def execute(
    image: str,
    operations: Sequence[Operation],
    options: Mapping[str, Any] | None = None,
    *,
    fs: ImageFilesystem,
    settings: Settings | None = None,
) -> ProgressStream:
    """Run operations on an image as a progress stream.

    Nothing runs until the stream is consumed. See ``run_operations``.
    """
    return ProgressStream(run_operations(image, operations, options, fs=fs, settings=settings))


__all__ = [
    "DRIVE_OPTION",
    "OperationError",
    "ScriptExecutionError",
    "execute",
    "run_operations",
]
