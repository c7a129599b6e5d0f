"""
Trace Worker - Runs Potrace in a child process that can be stopped mid-trace

Potrace gives no hook to interrupt a trace, and its cost grows faster than
the pixel count. Cancelling a request therefore terminates the child
process, which also releases its copy of the raster.
"""
from typing import Optional
import logging
import multiprocessing
import threading

from ..errors import ConversionCancelled, TraceFailure
from ..ingestion.loader import RasterImage
from .svg import SvgDocument
from .vectorizer import PotraceTracer, TraceParams

logger = logging.getLogger(__name__)


def _trace_in_child(tracer, pixels, params, conn):
    """Child process entry point: send ("ok", document) or ("failed", message)"""
    try:
        document = tracer.trace(RasterImage(pixels=pixels), params)
        conn.send(("ok", document))
    except Exception as e:
        conn.send(("failed", str(e)))
    finally:
        conn.close()


class TraceWorker:
    """
    Cancellable tracing.

    Each call starts one child process, polls `cancel` while it runs and
    terminates the child as soon as `cancel` is set.
    """

    def __init__(
        self,
        tracer: Optional[PotraceTracer] = None,
        start_method: str = "spawn",
        poll_interval: float = 0.05,
        join_timeout: float = 5.0,
    ):
        self.tracer = tracer or PotraceTracer()
        self.start_method = start_method
        self.poll_interval = poll_interval
        self.join_timeout = join_timeout

    @classmethod
    def from_settings(cls, config, tracer: Optional[PotraceTracer] = None) -> "TraceWorker":
        return cls(
            tracer=tracer,
            start_method=config.trace_start_method,
            poll_interval=config.trace_poll_interval,
        )

    def run(
        self,
        raster: RasterImage,
        params: TraceParams,
        cancel: Optional[threading.Event] = None,
    ) -> SvgDocument:
        """
        Trace `raster` in a child process.

        Raises:
            ConversionCancelled: `cancel` was set before the trace finished
            TraceFailure: the tracer raised, or the child died without a result
        """
        if cancel is not None and cancel.is_set():
            raise ConversionCancelled("Conversion cancelled.")

        ctx = multiprocessing.get_context(self.start_method)
        reader, writer = ctx.Pipe(duplex=False)
        process = ctx.Process(
            target=_trace_in_child,
            args=(self.tracer, raster.pixels, params, writer),
            daemon=True,
        )
        process.start()
        writer.close()

        try:
            while not reader.poll(self.poll_interval):
                if cancel is not None and cancel.is_set():
                    logger.info(f"Cancelling trace of {raster.width}x{raster.height} raster (pid {process.pid})")
                    raise ConversionCancelled("Conversion cancelled.")
            try:
                status, payload = reader.recv()
            except EOFError:
                raise TraceFailure(f"Tracer process exited with code {process.exitcode} before finishing")
        finally:
            if process.is_alive():
                process.terminate()
            process.join(self.join_timeout)
            reader.close()

        if status != "ok":
            logger.error(f"Tracer process failed on {raster.width}x{raster.height} raster: {payload}")
            raise TraceFailure(f"Tracing failed: {payload}")
        return payload
