"""Tests for ChatModelManager: atomic activation, rollback, revalidation."""

import pytest

from vault_copilot.config import CustomModel, find_custom_model
from vault_copilot.exceptions import (
    ConfigurationError,
    ConstructionError,
    CredentialError,
    ModelNotReadyError,
    PingError,
)
from vault_copilot.chat_model_manager import ChatModelManager

from conftest import TransportAdapter


def _model(store, key):
    return find_custom_model(key, store.get().active_models)


class TestActivate:
    def test_success(self, model_manager, store, fake_llm):
        active = model_manager.activate(_model(store, "gpt-4o|openai"))
        assert model_manager.get_active_model() is active
        assert active.client is fake_llm
        assert active.vendor == "Fake"
        assert active.cors_required is False
        assert model_manager.validate_chat_model(active)

    def test_missing_credentials(self, model_manager, store):
        with pytest.raises(CredentialError, match="API key is not provided"):
            model_manager.activate(_model(store, "claude-3-5-sonnet-latest|anthropic"))
        assert model_manager.get_active_model() is None

    def test_unregistered_model(self, model_manager):
        with pytest.raises(ConfigurationError):
            model_manager.activate(CustomModel(name="ghost", provider="openai"))

    def test_failed_ping_keeps_previous_model(self, model_manager, store, fake_adapter):
        previous = model_manager.activate(_model(store, "gpt-4o|openai"))

        fake_adapter.fail_without_cors = True
        fake_adapter.fail_with_cors = True
        with pytest.raises(PingError):
            model_manager.activate(_model(store, "gpt-4o-mini|openai"))

        assert model_manager.get_active_model() is previous

    def test_construction_failure_clears_active(self, model_manager, store, fake_adapter):
        model_manager.activate(_model(store, "gpt-4o|openai"))

        fake_adapter.fail_construction = True
        with pytest.raises(ConstructionError, match="bad client arguments"):
            model_manager.activate(_model(store, "gpt-4o-mini|openai"))

        assert model_manager.get_active_model() is None

    def test_cors_required_is_applied(self, model_manager, store, fake_adapter):
        fake_adapter.fail_without_cors = True
        active = model_manager.activate(_model(store, "gpt-4o|openai"))
        assert active.cors_required is True
        assert active.config.enable_cors is True

    def test_reasoning_model_skips_ping(self, model_manager, store, fake_adapter):
        store.set(active_models=[{"name": "o1-preview", "provider": "openai"}])
        fake_adapter.fail_without_cors = True
        fake_adapter.fail_with_cors = True

        active = model_manager.activate(_model(store, "o1-preview|openai"))

        assert active.is_reasoning_model
        assert all(cfg.timeout is None for cfg in fake_adapter.configs)

    def test_reasoning_azure_preflight(self, model_manager, store):
        store.set(
            azure_openai_api_instance_name=None,
            active_models=[{"name": "o1-preview", "provider": "azure openai"}],
            azure_openai_api_deployments=[{
                "model_key": "o1-preview|azure openai",
                "deployment_name": "o1-dep",
                "api_key": "k",
            }],
        )
        with pytest.raises(ConfigurationError, match="required"):
            model_manager.activate(_model(store, "o1-preview|azure openai"))


class TestQueries:
    def test_get_chat_model_without_active(self, model_manager):
        with pytest.raises(ModelNotReadyError):
            model_manager.get_chat_model()

    def test_is_current(self, model_manager, store):
        gpt = _model(store, "gpt-4o|openai")
        assert model_manager.is_current(gpt) is False
        model_manager.activate(gpt)
        assert model_manager.is_current(gpt) is True
        assert model_manager.is_current(_model(store, "gpt-4o-mini|openai")) is False

    def test_is_current_detects_setting_change(self, model_manager, store):
        model_manager.activate(_model(store, "gpt-4o|openai"))
        store.set(temperature=0.9)
        assert model_manager.is_current(_model(store, "gpt-4o|openai")) is False

    def test_count_tokens_without_model(self, model_manager):
        assert model_manager.count_tokens("hello world") == 0

    def test_active_model_invoke_and_stream(self, model_manager, store):
        active = model_manager.activate(_model(store, "gpt-4o|openai"))
        assert active.invoke([]) == "Hello from the fake model"
        assert list(active.stream([])) == ["Hello ", "from ", "fake"]


class TestSettingsRevalidation:
    def test_registry_rebuilt_on_settings_change(self, model_manager, store):
        assert "llama3|ollama" not in model_manager.registry
        store.set(active_models=[{"name": "llama3", "provider": "ollama"}])
        assert "llama3|ollama" in model_manager.registry

    def test_revoked_credentials_clear_active(self, model_manager, store):
        model_manager.activate(_model(store, "gpt-4o|openai"))
        store.set(openai_api_key=None)
        assert model_manager.get_active_model() is None

    def test_unrelated_change_keeps_active(self, model_manager, store):
        active = model_manager.activate(_model(store, "gpt-4o|openai"))
        store.set(user_system_prompt="Be brief.")
        assert model_manager.get_active_model() is active


class TestTransportLifetime:
    def test_replaced_and_cleared_models_close_transport(self, store, events):
        adapter = TransportAdapter(reject_direct=True)
        manager = ChatModelManager(store, adapter_lookup=lambda provider: adapter, events=events)
        try:
            first = manager.activate(_model(store, "gpt-4o|openai"))
            assert first.cors_required is True
            first_transport = first.client.kwargs["http_client"]
            assert not first_transport.is_closed

            second = manager.activate(_model(store, "gpt-4o-mini|openai"))
            assert first_transport.is_closed
            second_transport = second.client.kwargs["http_client"]
            assert not second_transport.is_closed

            manager.clear()
            assert second_transport.is_closed
            assert all(t.is_closed for t in adapter.transports())
        finally:
            manager.close()
