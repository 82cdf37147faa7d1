import re

import psutil

from .exceptions import InvalidVolumeName


VOLUME_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
MAX_VOLUME_NAME_LENGTH = 64  # EFS creation token limit


def get_mount(target_path):
    """Return the mount table entry whose mountpoint is `target_path`, or None."""
    target_path = str(target_path)
    for m in psutil.disk_partitions(all=True):
        if m.mountpoint == target_path:
            return m


def normalize_mount_options(mount_options: str):
    """Split a comma separated mount options string, dropping blanks and duplicates (order is kept)."""
    options = (p.strip() for p in mount_options.split(","))
    return list(dict.fromkeys(p for p in options if p))


def validate_volume_name(name: str) -> str:
    """
    Volume names double as EFS creation tokens and as directory names under the plugin root,
    so only a conservative character set is accepted.
    """
    if not name:
        raise InvalidVolumeName(name=name, reason="name cannot be empty")
    if len(name) > MAX_VOLUME_NAME_LENGTH:
        raise InvalidVolumeName(name=name, reason=f"longer than {MAX_VOLUME_NAME_LENGTH} characters")
    if not VOLUME_NAME_RE.match(name):
        raise InvalidVolumeName(name=name, reason=f"must match {VOLUME_NAME_RE.pattern}")
    return name
