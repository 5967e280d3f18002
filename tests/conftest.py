import logging
import sys
from pathlib import Path

import pytest

# Ensure 'src' is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from mixdrop_save.cloud import InMemoryCloudSlot  # noqa: E402
from mixdrop_save.config import ENV_ENCRYPTION_KEY, EngineConfig  # noqa: E402
from mixdrop_save.engine import SaveDataEngine  # noqa: E402
from mixdrop_save.paths import ENV_SAVE_DIR  # noqa: E402

KEY_16 = "0123456789abcdef"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    monkeypatch.delenv(ENV_SAVE_DIR, raising=False)
    monkeypatch.delenv(ENV_ENCRYPTION_KEY, raising=False)
    yield
    package_logger = logging.getLogger("mixdrop_save")
    for handler in [h for h in package_logger.handlers if getattr(h, "_mixdrop_handler", False)]:
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_engine(tmp_path: Path):
    """Build and initialise an engine rooted in ``tmp_path``."""
    engines = []

    def _make(**overrides) -> SaveDataEngine:
        cloud_slot = overrides.pop("cloud_slot", None)
        overrides.setdefault("save_dir", tmp_path)
        overrides.setdefault("encryption_key", KEY_16)
        engine = SaveDataEngine(EngineConfig(**overrides), cloud_slot=cloud_slot)
        assert engine.init()
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.shutdown()


@pytest.fixture
def cloud_slot() -> InMemoryCloudSlot:
    return InMemoryCloudSlot(track_timestamps=True)
