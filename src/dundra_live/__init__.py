"""DUNDRA LIVE - Real-time tabletop game companion: live transcription and game analysis."""

from importlib import metadata
from pathlib import Path
import tomllib


def _get_version() -> str:
    try:
        return metadata.version("dundra-live")
    except Exception:
        pass

    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return str(data["project"]["version"])
    except Exception:
        return "unknown"


__version__ = _get_version()

__all__ = ["__version__"]
