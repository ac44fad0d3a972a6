import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from paxcore.core.logging import clearLogContext



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")



@pytest.fixture(autouse=True)
def _resetLogContext():
    clearLogContext()
    yield
    clearLogContext()



@pytest.fixture
def writeManifest(tmp_path: Path) -> Callable[..., Path]:
    """
    Write `text` as <tmp_path>/<relDir>/manifest.<ext> and return the file path.
    """
    def _write(relDir: str, text: str, ext: str = "yaml") -> Path:
        directory = tmp_path / relDir if relDir else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"manifest.{ext}"
        path.write_text(text, encoding="utf-8")
        return path

    return _write
