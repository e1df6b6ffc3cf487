"""
sketches.py: creating new sketch files and locating existing ones.

New sketches are written to sketches/<date>[-<suffix>].js in the working
directory, seeded from one of the templates shipped in templates/.
"""

import os
import re
from datetime import datetime

from rich.markup import escape

from .modules import is_path_specifier, resolve_module
from .output import (
    BULLET,
    EntryNotFoundError,
    EntryUnreadableError,
    ResolveError,
    SketchExistsError,
    TemplateNotFoundError,
    status,
)


TEMPLATE_DIRECTORY = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")
SKETCH_DIRECTORY = "sketches"
DATE_FORMAT = "%Y.%m.%d-%H.%M.%S"
MAX_FILENAME_LENGTH = 255

_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]+')
_RESERVED_NAMES = re.compile(r"^(con|prn|aux|nul|com\d|lpt\d)$", re.IGNORECASE)


def format_timestamp(now=None):
    """Format a datetime (default: now) as yyyy.mm.dd-HH.MM.ss."""
    return (now or datetime.now()).strftime(DATE_FORMAT)


def sanitize_filename(name, replacement="!"):
    """Make `name` safe to use as a single path component on any OS."""
    name = _ILLEGAL_CHARS.sub(replacement, name)
    name = name.strip().strip(".")
    if _RESERVED_NAMES.match(name):
        name += replacement
    return name[:MAX_FILENAME_LENGTH]


def generate_file_name(suffix="", now=None):
    """Return '<date>.js', or '<date>-<suffix>.js' when a suffix is given."""
    suffix = suffix or ""
    separator = "-" if suffix else ""
    if suffix.endswith(".js"):
        suffix = suffix[: -len(".js")]
    return sanitize_filename(f"{format_timestamp(now)}{separator}{suffix}.js")


def load_template(key, template_directory=TEMPLATE_DIRECTORY):
    """Return the source text of templates/<key>.js."""
    path = os.path.join(template_directory, f"{key}.js")
    # Keys are file names, not paths
    if os.path.dirname(os.path.normpath(f"{key}.js")) or not os.path.isfile(path):
        raise TemplateNotFoundError(f"Couldn't find a template by the key {key}")
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise TemplateNotFoundError(f"Couldn't find a template by the key {key}") from e


def create_sketch(
    directory=SKETCH_DIRECTORY,
    template="default",
    suffix="",
    cwd=None,
    template_directory=TEMPLATE_DIRECTORY,
    bullet=BULLET,
):
    """Write a new sketch seeded from `template`. Returns (path, source).

    Never overwrites: an existing file at the generated path is an error,
    as is an unknown template key (in which case nothing is written).
    """
    cwd = cwd or os.getcwd()
    directory = os.path.join(cwd, directory)
    os.makedirs(directory, exist_ok=True)

    filepath = os.path.join(directory, generate_file_name(suffix))
    exists_message = f"The file already exists: {os.path.relpath(filepath, cwd)}"
    if os.path.exists(filepath):
        raise SketchExistsError(exists_message)

    source = load_template(template, template_directory)

    try:
        f = open(filepath, "x", encoding="utf-8")
    except FileExistsError as e:
        # Created by someone else since the check above
        raise SketchExistsError(exists_message) from e
    with f:
        f.write(source)
    status(f"Writing file: [bold]{escape(os.path.relpath(filepath, cwd))}[/]", bullet)
    return filepath, source


def resolve_entry(entry, cwd=None):
    """Find the file `entry` refers to and read it. Returns (path, source).

    Entries are always paths: 'sketch' means './sketch', never a package
    from node_modules.
    """
    cwd = cwd or os.getcwd()
    specifier = entry if is_path_specifier(entry) else "./" + entry
    try:
        path, _ = resolve_module(specifier, cwd)
    except ResolveError as e:
        raise EntryNotFoundError(f"Cannot find file: {entry}") from e

    try:
        with open(path, encoding="utf-8") as f:
            source = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise EntryUnreadableError(f"Cannot read entry file: {os.path.relpath(path, cwd)}") from e
    return path, source
