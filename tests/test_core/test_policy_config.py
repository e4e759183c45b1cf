"""Tests for loading the access-policy YAML."""
from __future__ import annotations

import pytest

from access_layer.core.policy import load_policy_config
from access_layer.core.query import Operator


def test_repo_policy_config_loads(policy_config):
    assert policy_config.admin_role == "admin"
    assert policy_config.is_read_only("Roles")
    manager = policy_config.role_filters["manager"][0]
    assert manager.field == "team_id"
    assert manager.op is Operator.IN
    assert manager.context_param == "team_ids"
    assert policy_config.temporal.only_active is True


def test_missing_top_level_key_is_rejected(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text("rules: {}\n", encoding="utf-8")
    with pytest.raises(ValueError, match="policy"):
        load_policy_config(path)


def test_empty_policy_section_uses_defaults(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text("policy:\n", encoding="utf-8")
    config = load_policy_config(path)
    assert config.deny_anonymous is True
    assert config.role_filters == {}
