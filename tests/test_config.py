from __future__ import annotations

import pytest

from ragstore.config import get_settings, resolve_scan_options, resolve_write_options
from ragstore.exceptions import ConfigurationError


def test_defaults():
    settings = get_settings({})
    assert settings.index == "document"
    assert settings.label_index == "label"
    assert settings.similarity == "dot_product"
    assert settings.duplicate_documents == "overwrite"
    assert settings.batch_size == 10_000
    assert settings.refresh_type == "wait_for"


def test_hosts_accept_comma_separated_string():
    settings = get_settings({"hosts": "https://a:9200, https://b:9200"})
    assert settings.hosts_list == ["https://a:9200", "https://b:9200"]


def test_environment_prefix(monkeypatch):
    monkeypatch.setenv("RAGSTORE_INDEX", "from-env")
    settings = get_settings({"batch_size": 5})
    assert settings.index == "from-env"
    assert settings.batch_size == 5


def test_write_options_layer_call_arguments():
    settings = get_settings({"index": "docs", "batch_size": 50})
    options = resolve_write_options(settings, batch_size=10, duplicate_documents="skip")
    assert options.index == "docs"
    assert options.batch_size == 10
    assert options.op_type == "create"
    assert resolve_write_options(settings).op_type == "index"
    assert resolve_write_options(settings, default_index="labels").index == "labels"


def test_write_options_reject_unknown_policy():
    with pytest.raises(ConfigurationError):
        resolve_write_options(get_settings({}), duplicate_documents="merge")


@pytest.mark.parametrize("batch_size", [0, -1])
@pytest.mark.parametrize("resolve", [resolve_write_options, resolve_scan_options])
def test_options_reject_non_positive_batch_size(resolve, batch_size):
    with pytest.raises(ConfigurationError):
        resolve(get_settings({}), batch_size=batch_size)


def test_scan_options_fall_back_to_settings():
    settings = get_settings({"return_embedding": True, "scroll": "5m"})
    options = resolve_scan_options(settings)
    assert options.return_embedding is True
    assert options.scroll == "5m"
    assert resolve_scan_options(settings, return_embedding=False).return_embedding is False
