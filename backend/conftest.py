import pytest

from voicedesc.core.logging import clear_context

_PIPELINE_ENV = (
    "LLM_PROVIDER",
    "GEMINI_API_KEY",
    "ANALYSIS_MAX_ATTEMPTS",
    "ANALYSIS_BASE_DELAY",
    "ANALYSIS_MAX_DELAY",
    "ANALYSIS_UNITS_PER_TICK",
    "ANALYSIS_CONCURRENCY",
    "SEGMENTATION_POLL_INTERVAL",
    "SEGMENTATION_POLL_DEADLINE",
    "CHUNK_TARGET_BYTES",
    "CHUNK_MAX_DURATION",
    "CHUNK_OVERLAP",
    "JOB_DEADLINE",
    "JOB_STORE_CAS_RETRIES",
    "JOB_STORE_CACHE_LIMIT",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep every test independent of the developer's shell and .env file"""
    for name in _PIPELINE_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("VOICEDESC_JOB_DATA_DIR", str(tmp_path / "job_data"))
    yield
    clear_context()
