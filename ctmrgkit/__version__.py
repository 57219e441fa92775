import importlib.metadata
import pathlib
import subprocess

from typing import Optional

try:
    __version__ = importlib.metadata.version("ctmrgkit")
except importlib.metadata.PackageNotFoundError:
    # Running from a source checkout without installation
    __version__ = "0+unknown"


def _git_output(*args: str) -> Optional[str]:
    try:
        return (
            subprocess.check_output(
                ["git", *args],
                cwd=pathlib.Path(__file__).parent,
                stderr=subprocess.DEVNULL,
            )
            .decode("ascii")
            .strip()
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


git_commit = _git_output("rev-parse", "HEAD")
git_tag = _git_output("describe", "--exact-match", "--tags", "HEAD")
