"""Fetch -> convert -> stream pipeline for one media request.

Stages are chained through awaited writes and reads, so a slow client slows the
converter, which slows the upstream fetch. Each stage holds at most one chunk.
"""
import asyncio
import logging
from typing import AsyncGenerator, AsyncIterator, Optional

import anyio
import httpx
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from retroportal.config import CONVERT_TIMEOUT, IMAGE_CHUNK_SIZE
from retroportal.conversion.converter import DRAIN_TIMEOUT, ConverterHandle
from retroportal.conversion.models import (
    ImageFormat,
    PipelineState,
    TranscodeSpec,
    check_dimensions,
    is_valid_identifier,
    source_url_for,
)
from retroportal.errors import (
    ConverterRuntimeError,
    InvalidIdentifier,
    PortalError,
    StreamWriteError,
    UpstreamFetchError,
)

logger = logging.getLogger("retroportal.pipeline")


class TranscodePipeline:
    """
    One pipeline per media request.
    open() runs everything up to the first output chunk, so any failure before the
    first byte can still become an error status. stream() relays the rest.
    aclose() releases the fetch, the converter and both helper tasks; it is safe to call twice.
    """

    def __init__(
        self,
        spec: TranscodeSpec,
        client: httpx.AsyncClient,
        converter,
        chunk_size: int = IMAGE_CHUNK_SIZE,
        convert_timeout: float = CONVERT_TIMEOUT,
    ):
        self.spec = spec
        self.client = client
        self.converter = converter
        self.chunk_size = chunk_size
        self.convert_timeout = convert_timeout
        self.state = PipelineState.IDLE
        self.bytes_sent = 0
        self._response: Optional[httpx.Response] = None
        self._handle: Optional[ConverterHandle] = None
        self._feeder: Optional[asyncio.Task] = None
        self._diagnostics: Optional[asyncio.Task] = None
        self._body: Optional[AsyncGenerator[bytes, None]] = None
        self._first_input = b""
        # Time spent waiting on converter output; time parked at yield is the client's
        self._convert_waited = 0.0
        self._closed = False

    @classmethod
    def for_identifier(
        cls,
        identifier: str,
        width: int,
        height: int,
        output_format: ImageFormat,
        client: httpx.AsyncClient,
        converter,
        **kwargs,
    ) -> "TranscodePipeline":
        """Validate before anything is fetched or spawned."""
        if not is_valid_identifier(identifier):
            raise InvalidIdentifier(f"Invalid identifier {identifier!r}")
        check_dimensions(width, height)
        spec = TranscodeSpec(source_url_for(identifier), width, height, output_format)
        return cls(spec, client, converter, **kwargs)

    async def open(self) -> bytes:
        try:
            await self._fetch()
            await self._start_converter()
            first = await self._read_output()
            if not first:
                await self._finish()
                raise ConverterRuntimeError("Converter exited without output")
            return first
        except BaseException:
            self.state = PipelineState.FAILED
            await self.aclose()
            raise

    async def stream(self, first_chunk: bytes) -> AsyncIterator[bytes]:
        self.state = PipelineState.STREAMING
        chunk = first_chunk
        try:
            while chunk:
                yield chunk
                self.bytes_sent += len(chunk)
                chunk = await self._read_output()
            await self._finish()
        except BaseException:
            self.state = PipelineState.FAILED
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Runs even when the request task is being cancelled by a disconnect
        with anyio.CancelScope(shield=True):
            tasks = [t for t in (self._feeder, self._diagnostics) if t is not None]
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception) and not isinstance(result, PortalError):
                    logger.debug("Pipeline task ended with %r", result)
            if self._handle is not None:
                await self._handle.close()
            if self._body is not None:
                await self._body.aclose()
            if self._response is not None:
                await self._response.aclose()
        logger.debug(
            "Pipeline for %s closed in state %s after %s bytes",
            self.spec.source_url, self.state.value, self.bytes_sent,
        )

    async def _fetch(self) -> None:
        self.state = PipelineState.FETCHING
        url = self.spec.source_url
        logger.info("Fetching image %s", url)
        request = self.client.build_request("GET", url)
        try:
            self._response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Fetching {url} failed: {e!r}") from e
        if not self._response.is_success:
            raise UpstreamFetchError(f"{url} returned status {self._response.status_code}")
        # A body that ends before its first chunk never gets a converter
        self._body = self._response.aiter_bytes(self.chunk_size)
        try:
            self._first_input = await self._body.__anext__()
        except StopAsyncIteration:
            raise UpstreamFetchError(f"{url} returned an empty body") from None
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Reading {url} failed: {e!r}") from e

    async def _start_converter(self) -> None:
        self.state = PipelineState.CONVERTING
        self._handle = await self.converter.spawn(self.spec)
        self._feeder = asyncio.create_task(self._feed())
        self._diagnostics = asyncio.create_task(self._log_diagnostics())

    async def _feed(self) -> None:
        """Copy the upstream body into the converter, one chunk at a time."""
        try:
            await self._handle.write(self._first_input)
            self._first_input = b""
            async for chunk in self._body:
                await self._handle.write(chunk)
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Converter stopped reading input for %s", self.spec.source_url)
            return
        except httpx.HTTPError as e:
            self._handle.kill()
            raise UpstreamFetchError(f"Reading {self.spec.source_url} failed: {e!r}") from e
        except PortalError:
            self._handle.kill()
            raise
        await self._handle.close_input()

    async def _log_diagnostics(self) -> None:
        async for text in self._handle.diagnostics():
            if text:
                logger.warning("Converter output for %s: %s", self.spec.source_url, text)

    async def _read_output(self) -> bytes:
        """
        Next output chunk. CONVERT_TIMEOUT bounds the total time spent waiting
        here, so a slow client throttles the converter without using up its budget.
        """
        loop = asyncio.get_running_loop()
        remaining = self.convert_timeout - self._convert_waited
        started = loop.time()
        try:
            if remaining <= 0:
                raise asyncio.TimeoutError()
            return await asyncio.wait_for(self._handle.read(self.chunk_size), timeout=remaining)
        except asyncio.TimeoutError as e:
            self._handle.kill()
            raise ConverterRuntimeError(
                f"Converter exceeded {self.convert_timeout}s for {self.spec.source_url}"
            ) from e
        finally:
            self._convert_waited += loop.time() - started

    async def _finish(self) -> None:
        """Output hit EOF: check how the converter and the feeder ended."""
        try:
            returncode = await asyncio.wait_for(self._handle.wait(), timeout=DRAIN_TIMEOUT)
        except asyncio.TimeoutError as e:
            self._handle.kill()
            raise ConverterRuntimeError("Converter closed its output but did not exit") from e
        if not self._feeder.done():
            self._feeder.cancel()
        feed_results = await asyncio.gather(self._feeder, return_exceptions=True)
        feed_error = feed_results[0]
        try:
            await asyncio.wait_for(
                asyncio.gather(self._diagnostics, return_exceptions=True), timeout=DRAIN_TIMEOUT
            )
        except asyncio.TimeoutError:
            logger.debug("Converter diagnostics still open for %s", self.spec.source_url)
        if isinstance(feed_error, PortalError):
            raise feed_error
        if returncode != 0:
            raise ConverterRuntimeError(f"Converter exited with status {returncode}")
        self.state = PipelineState.COMPLETED
        logger.info(
            "Converted %s to %s (%s bytes)",
            self.spec.source_url, self.spec.output_format.value, self.bytes_sent,
        )


class TranscodeResponse(StreamingResponse):
    """
    Streams a pipeline and always closes it, whether the body completed, the
    pipeline failed mid-stream or the client went away.
    """

    def __init__(self, pipeline: TranscodePipeline, first_chunk: bytes, path: str = ""):
        super().__init__(
            pipeline.stream(first_chunk),
            media_type=pipeline.spec.output_format.media_type,
        )
        self.pipeline = pipeline
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except PortalError as e:
            # Status line already went out; aborting the connection is all that is left
            logger.error(
                "%s: transcode aborted after %s bytes: %s", self.path, self.pipeline.bytes_sent, e
            )
            raise
        except (OSError, ClientDisconnect) as e:
            err = StreamWriteError(repr(e))
            logger.info("%s: %s after %s bytes", self.path, err.message, self.pipeline.bytes_sent)
        finally:
            with anyio.CancelScope(shield=True):
                await self.body_iterator.aclose()
                await self.pipeline.aclose()
