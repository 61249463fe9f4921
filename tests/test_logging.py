"""Log helpers never emit raw credentials."""

from core.logging import mask_key, redact_secrets


def test_mask_key():
    assert mask_key("AIzaSyExampleKey123") == "AIzaSyEx..."
    assert mask_key(None) == ""
    assert mask_key("") == ""


def test_redact_secrets_masks_credential_fields():
    event = {"event": "Provider call", "api_key": "sk-live-1234567890", "provider": "openai"}
    redacted = redact_secrets(None, "info", event)
    assert redacted["api_key"] == "sk-live-..."
    assert redacted["provider"] == "openai"
