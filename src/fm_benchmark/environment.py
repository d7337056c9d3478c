"""
Execution environment capture.

Every probe is best effort: anything that cannot be determined on the current
platform is reported as None.
"""

import json
import locale
import os
import platform
import socket
import subprocess
from datetime import datetime
from typing import Optional, Tuple

from . import __version__
from .models import EnvironmentSnapshot


_SYSTEM_NAMES = {
    "Darwin": "macOS",
    "Linux": "Linux",
    "Windows": "Windows",
}


def capture_environment() -> EnvironmentSnapshot:
    """
    Capture the current execution environment.

    Returns:
        EnvironmentSnapshot describing this machine and process
    """
    system = platform.system()
    system_name = _SYSTEM_NAMES.get(system, system or "unknown")

    if system == "Darwin":
        system_version = platform.mac_ver()[0] or platform.release()
    else:
        system_version = platform.release()

    return EnvironmentSnapshot(
        device_name=socket.gethostname(),
        system_name=system_name,
        system_version=system_version,
        locale_identifier=_locale_identifier(),
        app_version=__version__,
        hardware_model=platform.machine() or None,
        cpu_model=platform.processor() or None,
        cpu_cores=os.cpu_count(),
        gpu_model=_mac_gpu_model() if system == "Darwin" else None,
        total_memory=_total_memory(),
        timestamp=datetime.now()
    )


def describe_memory(total_memory: Optional[int]) -> Optional[str]:
    """Render a byte count as whole gigabytes."""
    if total_memory is None:
        return None
    return f"{total_memory / (1024 ** 3):.0f} GB"


def _locale_identifier() -> str:
    language, _encoding = _current_locale()
    return language or "C"


def _current_locale() -> Tuple[Optional[str], Optional[str]]:
    try:
        return locale.getlocale()
    except ValueError:
        return None, None


def _total_memory() -> Optional[int]:
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return None


def _mac_gpu_model() -> Optional[str]:
    """Read the GPU name from system_profiler; None when unavailable (e.g. sandboxed)."""
    try:
        completed = subprocess.run(
            ["/usr/sbin/system_profiler", "SPDisplaysDataType", "-json"],
            capture_output=True,
            text=True,
            timeout=10,
            check=True
        )
        data = json.loads(completed.stdout)
    except (OSError, subprocess.SubprocessError, ValueError):
        return None

    displays = data.get("SPDisplaysDataType") or []
    if not displays:
        return None
    first = displays[0]
    return first.get("sppci_model") or first.get("_name")
