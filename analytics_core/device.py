"""
Device properties attached to install and session events.

Only coarse platform facts: OS, machine type, runtime and SDK versions.
"""

import platform
import sys

from .constants import SDK_NAME, SDK_VERSION


def _device_type():
    if sys.platform.startswith(("linux", "win32", "darwin", "cygwin")):
        return "desktop"
    return "other"


class DeviceProperties:
    """Synchronous snapshot of the device the host application runs on."""

    def __init__(self, app_version=""):
        self.app_version = app_version

    def properties(self):
        props = {
            "os_name": platform.system() or sys.platform,
            "os_version": platform.release(),
            "sdk": SDK_NAME,
            "sdk_version": SDK_VERSION,
            "device_model": platform.machine(),
            "device_type": _device_type(),
            "runtime_version": platform.python_version(),
        }
        if self.app_version:
            props["app_version"] = self.app_version
        return props
