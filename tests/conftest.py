import os

import pytest


@pytest.fixture
def fake_tool(tmp_path):
    """Write an executable shell script standing in for a CLI binary."""
    def write(name, body):
        path = tmp_path / "bin" / name
        path.parent.mkdir(exist_ok=True)
        path.write_text("#!/bin/sh\n" + body)
        os.chmod(path, 0o755)
        return str(path)
    return write
