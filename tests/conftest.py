import pytest

from scriptplate.core.settings import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for name in (
        "SCRIPTPLATE_BACKEND",
        "SCRIPTPLATE_TIMEOUT",
        "SCRIPTPLATE_WORK_ROOT",
        "SCRIPTPLATE_API_ALLOW_EXECUTE",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
