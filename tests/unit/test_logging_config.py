"""Tests for the shared logging setup and the CLI's import surface."""
import importlib.util
import sys
from pathlib import Path

import structlog

from docqa.logging_config import configure_logging

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "index_document.py"


def test_configure_logging_renders_json():
    configure_logging()

    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)


def test_index_script_does_not_import_web_app(monkeypatch):
    monkeypatch.delitem(sys.modules, "docqa.main", raising=False)

    spec = importlib.util.spec_from_file_location("index_document", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    assert module.configure_logging is configure_logging
    assert "docqa.main" not in sys.modules
