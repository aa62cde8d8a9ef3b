import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_playmix_env():
    """Ensure PLAYMIX_* settings from the developer's shell do not leak into tests."""
    backup = {k: v for k, v in os.environ.items() if k.startswith('PLAYMIX_')}
    for k in backup:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k in [k for k in os.environ if k.startswith('PLAYMIX_')]:
            os.environ.pop(k, None)
        os.environ.update(backup)
