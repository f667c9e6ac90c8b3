from types import SimpleNamespace

import pytest

from stocksync.main import _assert_webhook_secrets


def _settings(env: str, shopify: str | None, processor: str | None) -> SimpleNamespace:
    return SimpleNamespace(app_env=env, shopify_webhook_secret=shopify, webhook_processor_secret=processor)


def test_missing_secrets_fail_fast_outside_dev():
    with pytest.raises(RuntimeError, match="WEBHOOK_PROCESSOR_SECRET"):
        _assert_webhook_secrets(_settings("prod", "s", None))


def test_missing_secrets_allowed_in_dev():
    _assert_webhook_secrets(_settings("dev", None, None))


def test_configured_secrets_pass_everywhere():
    _assert_webhook_secrets(_settings("prod", "s", "c"))
