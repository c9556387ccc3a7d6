"""
Smoke tests for the run_normalizer command-line script.
"""

# Add parent to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent))

import run_normalizer


def test_normalizes_files_into_output_directory(tmp_path, monkeypatch):
    source = tmp_path / "page.html"
    source.write_bytes('<meta charset="ISO-8859-1"><p>Café</p>'.encode("latin-1"))
    output = tmp_path / "out"

    monkeypatch.setattr(sys, "argv", ["run_normalizer.py", str(source), "-o", str(output)])

    assert run_normalizer.main() == 0

    html = (output / "page.html").read_text(encoding="utf-8")
    assert html.startswith("<!DOCTYPE html>")
    assert "<p>Café</p>" in html


def test_prints_to_stdout(tmp_path, monkeypatch, capsys):
    source = tmp_path / "page.html"
    source.write_text("<p>hi</p>", encoding="utf-8")

    monkeypatch.setattr(sys, "argv", ["run_normalizer.py", str(source)])

    assert run_normalizer.main() == 0

    captured = capsys.readouterr()
    assert "<body><p>hi</p></body>" in captured.out
    assert "✓" in captured.err


def test_missing_file_is_reported(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["run_normalizer.py", str(tmp_path / "missing.html")])

    assert run_normalizer.main() == 1
    assert "✗" in capsys.readouterr().err
