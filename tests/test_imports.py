import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]


@pytest.mark.parametrize(
    "module",
    [
        "app.cdms",
        "app.cdms.models",
        "app.cdms.modules.classification.models",
        "app.cdms.modules.document_control.service",
        "app.cdms.modules.compliance.service",
        "scripts.init_db",
    ],
)
def test_module_imports_in_fresh_interpreter(module):
    # A fresh process has no modules cached, so import order problems surface here.
    proc = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=ROOT,
        capture_output=True,
        text=True,
    )
    assert proc.returncode == 0, proc.stderr
