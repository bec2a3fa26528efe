"""Ensure Python compatibility requirements stay in sync across the project."""

from __future__ import annotations

from pathlib import Path

import src
from config.version import PROJECT_VERSION, PYTHON_REQUIRES_SPECIFIER, VERSION_INFO

ROOT_DIR = Path(__file__).resolve().parents[1]


def test_python_version_single_source_of_truth() -> None:
    """The declared Python version should match the project metadata."""

    assert src.__package_info__["python_requires"] == PYTHON_REQUIRES_SPECIFIER
    assert src.__version__ == PROJECT_VERSION
    assert ".".join(str(part) for part in VERSION_INFO.tuple) == PROJECT_VERSION

    setup_text = (ROOT_DIR / "setup.py").read_text(encoding="utf-8")
    assert "PYTHON_REQUIRES_SPECIFIER" in setup_text
    assert "PROJECT_VERSION" in setup_text
