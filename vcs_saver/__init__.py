import os

__version__ = "0.4.0"


def data_dir() -> str:
    """Return the vcs-saver data directory (for config and logs).

    Uses %APPDATA%/vcs-saver on Windows, ~/.vcs-saver on Unix.
    """
    if os.name == "nt":
        appdata = os.environ.get(
            "APPDATA", os.path.join(os.path.expanduser("~"), "AppData", "Roaming")
        )
        return os.path.join(appdata, "vcs-saver")
    return os.path.join(os.path.expanduser("~"), ".vcs-saver")
