"""External compiler invocation (Closure Compiler as a subprocess)."""

from __future__ import annotations

import asyncio
import json
import logging
import os

from chunkserve.domain.artifact import CompiledArtifact
from chunkserve.errors import CompilerError
from chunkserve.pipeline.options import (
    CompilerOptions,
    needs_flagfile,
    with_json_output,
    write_flagfile,
)

logger = logging.getLogger(__name__)


class ClosureCompiler:
    """Runs the compiler binary, at most ``max_concurrent`` at a time.

    Failures are raised as :class:`CompilerError` with the original exit
    code and stderr; nothing is retried.
    """

    def __init__(self, command: list[str], max_concurrent: int = 2):
        """Initialize compiler runner.

        Args:
            command: Executable plus fixed leading arguments
                (e.g. ``["java", "-jar", "closure-compiler.jar"]``)
            max_concurrent: Maximum simultaneous compiler subprocesses
        """
        self._command = list(command)
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def command(self) -> list[str]:
        return list(self._command)

    async def run(self, options: CompilerOptions) -> str:
        """Run the compiler and return its stdout."""
        flagfile = None
        if needs_flagfile(options):
            # Avoid E2BIG for very long argument lists
            flagfile = write_flagfile(options)
            args = ["--flagfile", flagfile]
        else:
            args = options.to_args()

        try:
            async with self._semaphore:
                logger.info(f"Compiling {len(options.js)} files")
                try:
                    process = await asyncio.create_subprocess_exec(
                        *self._command,
                        *args,
                        stdout=asyncio.subprocess.PIPE,
                        stderr=asyncio.subprocess.PIPE,
                    )
                except FileNotFoundError as e:
                    raise CompilerError(127, f"Compiler not found: {self._command[0]}") from e
                stdout, stderr = await process.communicate()
        finally:
            if flagfile:
                os.unlink(flagfile)

        diagnostics = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode != 0 or diagnostics:
            raise CompilerError(process.returncode or 0, diagnostics)
        return stdout.decode("utf-8")

    async def compile_to_json(self, options: CompilerOptions) -> list[dict]:
        """Run with ``--json_streams OUT`` and parse the output records."""
        stdout = await self.run(with_json_output(options))
        try:
            outputs = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise CompilerError(0, f"Unreadable compiler output: {e}") from e
        if not isinstance(outputs, list):
            raise CompilerError(0, "Compiler output must be a JSON array")
        return outputs

    async def compile_chunks(
        self, options: CompilerOptions, sorted_ids: tuple[str, ...]
    ) -> dict[str, CompiledArtifact]:
        """Compile a chunk set; outputs arrive in ``--chunk`` order."""
        outputs = await self.compile_to_json(options)
        if len(outputs) != len(sorted_ids):
            raise CompilerError(
                0, f"Expected {len(sorted_ids)} chunk outputs, got {len(outputs)}"
            )
        return {
            chunk_id: CompiledArtifact(
                chunk_id=chunk_id,
                code=output.get("src", ""),
                source_map=output.get("source_map", ""),
            )
            for chunk_id, output in zip(sorted_ids, outputs)
        }

    async def compile_page(self, options: CompilerOptions, page_id: str) -> CompiledArtifact:
        """Compile a single-page entry into one artifact."""
        outputs = await self.compile_to_json(options)
        if len(outputs) != 1:
            raise CompilerError(0, f"Expected 1 output, got {len(outputs)}")
        return CompiledArtifact(
            chunk_id=page_id,
            code=outputs[0].get("src", ""),
            source_map=outputs[0].get("source_map", ""),
        )
