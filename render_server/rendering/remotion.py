"""Remotion CLI adapter.

Bundling, composition listing and rendering all go through the Remotion
command line tool run as a subprocess:

    remotion bundle <entry> --out-dir <dir>
    remotion compositions <serve_url> --quiet
    remotion render <serve_url> <composition> <output> --props=<file> --codec=<codec>

Render progress is scraped from the CLI output ("Rendered 12/150",
"Encoded 12/150").
"""

import asyncio
import json
import logging
import os
import re
import shlex
import shutil
import tempfile
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from render_server.jobs.errors import RenderFailure
from render_server.jobs.models import RenderProps
from render_server.rendering.base import (
    Bundler,
    CompositionInfo,
    ProgressCallback,
    ProjectHandle,
    Renderer,
)

logger = logging.getLogger(__name__)

_RENDERED_RE = re.compile(r"Rendered\s+(\d+)\s*/\s*(\d+)")
_ENCODED_RE = re.compile(r"Encoded\s+(\d+)\s*/\s*(\d+)")
_LINE_SPLIT_RE = re.compile(r"[\r\n]")

# Share of overall progress given to frame rendering vs. encoding
RENDER_WEIGHT = 0.8
ENCODE_WEIGHT = 0.2

# Lines of stderr kept for error messages
_STDERR_TAIL = 20


async def _run_cli(command: Sequence[str], *cli_args: str) -> Tuple[str, str]:
    """Run one CLI subcommand to completion. Raises RenderFailure on non-zero exit.

    The child process is killed if the calling task is cancelled.
    """
    args = [*command, *cli_args]
    logger.debug("Running %s", " ".join(shlex.quote(a) for a in args))
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise RenderFailure(f"Could not start {args[0]}: {exc}") from exc

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        proc.kill()
        await proc.wait()
        raise

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        raise RenderFailure(_failure_message(cli_args[0], proc.returncode, err or out))
    return out, err


def _failure_message(subcommand: str, returncode: int, output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    detail = lines[-1] if lines else "no output"
    return f"remotion {subcommand} exited with code {returncode}: {detail}"


class RemotionProgress:
    """Turns Remotion CLI output lines into an overall progress fraction."""

    def __init__(self):
        self._rendered = 0.0
        self._encoded = 0.0
        self.fraction = 0.0

    def feed(self, line: str) -> Optional[float]:
        """Consume one output line. Returns the new fraction if it advanced."""
        match = _RENDERED_RE.search(line)
        if match:
            self._rendered = _ratio(match)
        match = _ENCODED_RE.search(line)
        if match:
            self._encoded = _ratio(match)

        fraction = min(1.0, RENDER_WEIGHT * self._rendered + ENCODE_WEIGHT * self._encoded)
        if fraction > self.fraction:
            self.fraction = fraction
            return fraction
        return None


def _ratio(match: "re.Match[str]") -> float:
    done, total = int(match.group(1)), int(match.group(2))
    if total <= 0:
        return 0.0
    return min(1.0, done / total)


class RemotionBundler(Bundler):
    """Bundles a Remotion project and lists its compositions."""

    def __init__(
        self,
        command: str = "npx remotion",
        bundle_dir: Optional[str] = None,
        cache: bool = True,
    ):
        self._command = shlex.split(command)
        self._bundle_dir = bundle_dir
        self._cache = cache
        self._bundles: Dict[str, ProjectHandle] = {}
        self._created_dirs: List[str] = []
        self._lock = asyncio.Lock()

    async def resolve_project(self, entry_point: str) -> ProjectHandle:
        if not self._cache:
            return await self._bundle(entry_point)
        async with self._lock:
            project = self._bundles.get(entry_point)
            if project is None:
                project = await self._bundle(entry_point)
                self._bundles[entry_point] = project
            return project

    async def _bundle(self, entry_point: str) -> ProjectHandle:
        if self._bundle_dir:
            os.makedirs(self._bundle_dir, exist_ok=True)
        out_dir = tempfile.mkdtemp(prefix="bundle-", dir=self._bundle_dir)
        self._created_dirs.append(out_dir)

        logger.info("Bundling %s into %s", entry_point, out_dir)
        try:
            await _run_cli(self._command, "bundle", entry_point, "--out-dir", out_dir)
        except (RenderFailure, asyncio.CancelledError):
            self._remove_dir(out_dir)
            raise
        return ProjectHandle(entry_point=entry_point, serve_url=out_dir)

    async def list_compositions(self, project: ProjectHandle) -> List[CompositionInfo]:
        out, _ = await _run_cli(
            self._command, "compositions", project.serve_url, "--quiet"
        )
        return [
            CompositionInfo(id=composition_id, serve_url=project.serve_url)
            for composition_id in out.split()
        ]

    def release_project(self, project: ProjectHandle) -> None:
        """Delete a per-job bundle. Cached bundles live until ``close``."""
        if self._cache:
            return
        self._remove_dir(project.serve_url)

    def _remove_dir(self, path: str) -> None:
        if path in self._created_dirs:
            self._created_dirs.remove(path)
            shutil.rmtree(path, ignore_errors=True)

    def close(self) -> None:
        """Remove bundle directories created by this bundler."""
        for path in self._created_dirs:
            shutil.rmtree(path, ignore_errors=True)
        self._created_dirs.clear()
        self._bundles.clear()


class RemotionRenderer(Renderer):
    """Renders a composition with ``remotion render``."""

    def __init__(self, command: str = "npx remotion", codec: str = "h264"):
        self._command = shlex.split(command)
        self._codec = codec

    async def render(
        self,
        composition: CompositionInfo,
        props: RenderProps,
        output_path: str,
        on_progress: ProgressCallback,
    ) -> str:
        with tempfile.NamedTemporaryFile(
            "w", suffix=".json", prefix="props-", delete=False
        ) as fh:
            json.dump(props.to_input_props(), fh)
            props_path = fh.name

        args = [
            *self._command,
            "render",
            composition.serve_url,
            composition.id,
            output_path,
            f"--props={props_path}",
            f"--codec={self._codec}",
        ]
        try:
            await self._run_render(args, on_progress)
        finally:
            os.remove(props_path)

        if not os.path.exists(output_path):
            raise RenderFailure(f"Renderer finished but {output_path} was not written")
        on_progress(1.0)
        return output_path

    async def _run_render(self, args: List[str], on_progress: ProgressCallback) -> None:
        logger.debug("Running %s", " ".join(shlex.quote(a) for a in args))
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RenderFailure(f"Could not start {args[0]}: {exc}") from exc

        progress = RemotionProgress()
        tail: Deque[str] = deque(maxlen=_STDERR_TAIL)

        async def pump(stream: asyncio.StreamReader, keep_tail: bool) -> None:
            pending = ""
            while True:
                chunk = await stream.read(4096)
                if not chunk:
                    break
                pending += chunk.decode("utf-8", errors="replace")
                *lines, pending = _LINE_SPLIT_RE.split(pending)
                for line in lines:
                    _handle_line(line, keep_tail)
            if pending:
                _handle_line(pending, keep_tail)

        def _handle_line(line: str, keep_tail: bool) -> None:
            if not line.strip():
                return
            if keep_tail:
                tail.append(line.strip())
            fraction = progress.feed(line)
            if fraction is not None:
                on_progress(fraction)

        try:
            await asyncio.gather(
                pump(proc.stdout, keep_tail=False),
                pump(proc.stderr, keep_tail=True),
            )
            await proc.wait()
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            raise RenderFailure(_failure_message("render", proc.returncode, "\n".join(tail)))
