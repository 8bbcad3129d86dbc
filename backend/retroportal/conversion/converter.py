"""Converter backends: bytes in, resized legacy-format bytes out.

Two implementations share the ConverterHandle interface:
- SubprocessConverter runs ImageMagick's ``convert`` reading stdin and writing stdout.
- PillowConverter decodes in-process on a worker thread (input is buffered, up to a cap).
"""
import asyncio
import io
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from retroportal.config import (
    CONVERTER_BACKEND,
    CONVERTER_COMMAND,
    PILLOW_MAX_INPUT_BYTES,
)
from retroportal.conversion.models import TranscodeSpec
from retroportal.conversion.resize import encode_image
from retroportal.errors import ConverterRuntimeError, ConverterSpawnError

logger = logging.getLogger("retroportal.converter")

# Leftover output after a kill is bounded by the pipe buffer; don't wait on it forever
DRAIN_TIMEOUT = 5.0


def build_convert_args(spec: TranscodeSpec) -> list[str]:
    """ImageMagick arguments: read stdin, optional -resize WxH, write FORMAT to stdout."""
    args = ["-"]
    if spec.resize:
        width, height = spec.resize
        args += ["-resize", f"{width}x{height}"]
    args.append(f"{spec.output_format.converter_name}:-")
    return args


class ConverterHandle(ABC):
    """One running conversion."""

    @abstractmethod
    async def write(self, chunk: bytes) -> None:
        """Feed input. Returns once the converter has room for more."""

    @abstractmethod
    async def close_input(self) -> None:
        ...

    @abstractmethod
    async def read(self, n: int) -> bytes:
        """Up to n bytes of output; b"" at end of output."""

    @abstractmethod
    async def wait(self) -> int:
        ...

    @property
    @abstractmethod
    def returncode(self) -> Optional[int]:
        ...

    @abstractmethod
    def kill(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Kill if still running and release every pipe."""

    async def diagnostics(self) -> AsyncIterator[str]:
        """Diagnostic text written by the converter, never sent to the client."""
        return
        yield


class SubprocessHandle(ConverterHandle):
    def __init__(self, proc: asyncio.subprocess.Process, program: str):
        self._proc = proc
        self.program = program

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode

    async def write(self, chunk: bytes) -> None:
        self._proc.stdin.write(chunk)
        await self._proc.stdin.drain()

    async def close_input(self) -> None:
        stdin = self._proc.stdin
        if stdin.is_closing():
            return
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            # Converter already stopped reading; its exit status tells the rest
            logger.debug("%s closed stdin before input ended", self.program)

    async def read(self, n: int) -> bytes:
        return await self._proc.stdout.read(n)

    async def wait(self) -> int:
        return await self._proc.wait()

    def kill(self) -> None:
        if self._proc.returncode is not None:
            return
        try:
            self._proc.kill()
        except ProcessLookupError:
            pass

    async def diagnostics(self) -> AsyncIterator[str]:
        while chunk := await self._proc.stderr.read(4096):
            yield chunk.decode("utf-8", errors="replace").strip()

    async def close(self) -> None:
        self.kill()
        if not self._proc.stdin.is_closing():
            self._proc.stdin.close()
        try:
            # Reading to EOF lets the pipe transports close themselves
            await asyncio.wait_for(self._proc.stdout.read(), timeout=DRAIN_TIMEOUT)
            await asyncio.wait_for(self._proc.stderr.read(), timeout=DRAIN_TIMEOUT)
        except (asyncio.TimeoutError, OSError) as e:
            logger.warning("Could not drain %s pid=%s: %r", self.program, self._proc.pid, e)
        await self._proc.wait()


class SubprocessConverter:
    """Runs an external converter (ImageMagick by default) once per image."""

    def __init__(self, program: Optional[Sequence[str]] = None):
        self.program = list(program or CONVERTER_COMMAND)

    def command(self, spec: TranscodeSpec) -> list[str]:
        return self.program + build_convert_args(spec)

    async def spawn(self, spec: TranscodeSpec) -> SubprocessHandle:
        cmd = self.command(spec)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Could not start converter %s: %s", self.program[0], e)
            raise ConverterSpawnError(f"Could not start {self.program[0]}: {e}") from e
        logger.debug("Started %s pid=%s", " ".join(cmd), proc.pid)
        return SubprocessHandle(proc, self.program[0])


class PillowHandle(ConverterHandle):
    def __init__(self, spec: TranscodeSpec, max_input_bytes: int):
        self.spec = spec
        self.max_input_bytes = max_input_bytes
        self._input = bytearray()
        self._output = io.BytesIO()
        self._done = asyncio.Event()
        self._returncode: Optional[int] = None
        self._error: Optional[str] = None

    @property
    def returncode(self) -> Optional[int]:
        return self._returncode

    async def write(self, chunk: bytes) -> None:
        if self._done.is_set():
            raise BrokenPipeError("converter is no longer accepting input")
        if len(self._input) + len(chunk) > self.max_input_bytes:
            raise ConverterRuntimeError(f"Source image larger than {self.max_input_bytes} bytes")
        self._input.extend(chunk)

    def _convert(self) -> bytes:
        with Image.open(io.BytesIO(bytes(self._input))) as img:
            img.load()
            return encode_image(img, self.spec.output_format, self.spec.resize)

    async def close_input(self) -> None:
        if self._done.is_set():
            return
        try:
            data = await asyncio.to_thread(self._convert)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            self._error = str(e)
            self._finish(1)
            return
        except Exception as e:
            # Anything else from a decoder plugin or the encoder still ends this conversion
            logger.exception("Pillow conversion of %s crashed", self.spec.source_url)
            self._error = repr(e)
            self._finish(1)
            return
        if self._done.is_set():
            # Killed while converting
            return
        self._output = io.BytesIO(data)
        self._finish(0)

    def _finish(self, returncode: int) -> None:
        self._input = bytearray()
        self._returncode = returncode
        self._done.set()

    async def read(self, n: int) -> bytes:
        await self._done.wait()
        return self._output.read(n)

    async def wait(self) -> int:
        await self._done.wait()
        return self._returncode

    def kill(self) -> None:
        if not self._done.is_set():
            self._output = io.BytesIO()
            self._finish(-9)

    async def diagnostics(self) -> AsyncIterator[str]:
        await self._done.wait()
        if self._error:
            yield self._error

    async def close(self) -> None:
        self.kill()
        self._output = io.BytesIO()


class PillowConverter:
    """In-process backend, for hosts without ImageMagick."""

    def __init__(self, max_input_bytes: int = PILLOW_MAX_INPUT_BYTES):
        self.max_input_bytes = max_input_bytes

    async def spawn(self, spec: TranscodeSpec) -> PillowHandle:
        return PillowHandle(spec, self.max_input_bytes)


def get_converter(backend: Optional[str] = None):
    backend = (backend or CONVERTER_BACKEND).lower()
    if backend == "pillow":
        return PillowConverter()
    if backend != "imagemagick":
        logger.warning("Unknown converter backend %s, using imagemagick", backend)
    return SubprocessConverter()
