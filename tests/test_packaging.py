from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = Path(__file__).resolve().parent.parent


def load_pyproject():
    with open(ROOT / "pyproject.toml", "rb") as f:
        return tomllib.load(f)


def test_readme_is_shipped():
    readme = load_pyproject()["project"]["readme"]
    assert readme == "README.md"
    assert (ROOT / readme).is_file()


def test_dashboard_not_installed_as_module():
    setuptools_cfg = load_pyproject()["tool"]["setuptools"]
    assert setuptools_cfg["py-modules"] == ["main"]
