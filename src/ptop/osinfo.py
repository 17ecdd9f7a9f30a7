"""Operating system name lookup."""

import re
from os import PathLike

from ptop.errors import OSReleaseError

DEFAULT_OS_RELEASE_PATH = "/etc/os-release"

_PRETTY_NAME = re.compile(r'^PRETTY_NAME="(.*)"', re.MULTILINE)


def get_os_name(path: str | PathLike[str] = DEFAULT_OS_RELEASE_PATH) -> str:
    """
    Return the human-readable OS name from an os-release file.

    Raises:
        OSReleaseError: The file cannot be read or has no PRETTY_NAME entry.
    """
    try:
        with open(path, encoding="utf-8") as fp:
            content = fp.read()
    except OSError as exc:
        raise OSReleaseError(f"cannot read {path}: {exc.strerror or exc}") from exc

    match = _PRETTY_NAME.search(content)
    if match is None:
        raise OSReleaseError("could not identify operating system")
    return match.group(1)
