from __future__ import annotations

import pytest

from markweave.core import ai
from markweave.core.ai import ClientConfigError, load_client


class _RecordingOpenAI:
    def __init__(self, **kwargs) -> None:
        self.init_kwargs = kwargs


def test_load_client_requires_openai_dependency(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(ai, "OpenAI", None)
    with pytest.raises(ClientConfigError) as exc:
        load_client(api_key="test-key")
    assert "openai" in str(exc.value).lower()


def test_load_client_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai, "OpenAI", _RecordingOpenAI)
    with pytest.raises(ClientConfigError) as exc:
        load_client(env={}, load_env_file=False)
    assert "OPENAI_API_KEY" in str(exc.value)


def test_load_client_reads_key_from_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(ai, "OpenAI", _RecordingOpenAI)
    monkeypatch.setenv("OPENAI_API_KEY", " env-key ")

    client = load_client(load_env_file=False)

    assert isinstance(client, _RecordingOpenAI)
    assert client.init_kwargs == {"api_key": "env-key"}


def test_explicit_key_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai, "OpenAI", _RecordingOpenAI)

    client = load_client(
        api_key="explicit", env={"OPENAI_API_KEY": "ignored"}, load_env_file=False
    )

    assert client.init_kwargs == {"api_key": "explicit"}


def test_dotenv_file_is_loaded(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    monkeypatch.setattr(ai, "OpenAI", _RecordingOpenAI)
    monkeypatch.setattr(ai, "load_dotenv", lambda: calls.append(True))

    load_client(api_key="k")

    assert calls == [True]
