"""Output location and public URLs for rendered videos."""

import os
import posixpath


class VideoStore:
    """Maps job ids to output files in the videos directory and to their URLs."""

    def __init__(self, base_dir: str, url_prefix: str = "/videos", extension: str = ".mp4"):
        self._base_dir = os.path.abspath(base_dir)
        self._url_prefix = "/" + url_prefix.strip("/")
        self._extension = extension

    @property
    def base_dir(self) -> str:
        return self._base_dir

    @property
    def url_prefix(self) -> str:
        return self._url_prefix

    def ensure_dir(self) -> str:
        """Create the videos directory if missing. Safe to call repeatedly."""
        os.makedirs(self._base_dir, exist_ok=True)
        return self._base_dir

    def output_path(self, job_id: str) -> str:
        """Full path the video for ``job_id`` is rendered to."""
        return os.path.join(self._base_dir, f"{job_id}{self._extension}")

    def public_url(self, output_path: str) -> str:
        """Client-facing URL for a rendered file inside the videos directory."""
        relative = os.path.relpath(os.path.abspath(output_path), self._base_dir)
        if relative.startswith(os.pardir):
            raise ValueError(f"{output_path} is outside {self._base_dir}")
        return posixpath.join(self._url_prefix, relative.replace(os.sep, "/"))

    def file_exists(self, job_id: str) -> bool:
        return os.path.exists(self.output_path(job_id))
