"""
commit.py: report the current git commit to the browser.

The sketch page asks for this (over HTTP or the live-reload socket) so it
can stamp exported frames with the commit they were made from.
"""

import asyncio
import os

from .output import CommitError
from .sketches import format_timestamp


async def _git(*args, cwd=None):
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommitError("git is not installed or not on PATH") from e
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()
        raise CommitError(message or f"git {' '.join(args)} exited with status {proc.returncode}")
    return stdout.decode().strip()


async def commit(cwd=None):
    """Return {"hash": <short HEAD hash>, "timestamp": <now>}.

    Recomputed on every call. Raises CommitError outside a repository or
    in one without commits.
    """
    cwd = cwd or os.getcwd()
    hash_ = await _git("rev-parse", "--short", "HEAD", cwd=cwd)
    return {"hash": hash_, "timestamp": format_timestamp()}
