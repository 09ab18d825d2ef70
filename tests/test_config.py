import pytest
from pydantic import ValidationError

from dvid_mesh.core.config import Config, get_config, reload_config
from dvid_mesh.external.api import DVIDInstance


def test_defaults():
    config = Config()
    assert config.leaf_suffix == "ngmesh"
    assert config.merge_suffix == "merge"
    assert config.max_transient_retries == 8
    assert config.max_auth_refreshes == 3


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DVID_SERVER_URL", "https://emdata.example.org/")
    monkeypatch.setenv("DVID_NODE_KEY", "abc123")
    monkeypatch.setenv("DVID_MESH_INSTANCE", "segmentation_meshes_tars")
    monkeypatch.setenv("DVID_MAX_MERGE_DEPTH", "4")

    config = reload_config()

    assert config is get_config()
    assert config.server_url == "https://emdata.example.org"
    assert config.max_merge_depth == 4
    assert config.key_base_url == (
        "https://emdata.example.org/api/node/abc123/segmentation_meshes_tars/key"
    )
    assert config.resolved_token_url == "https://emdata.example.org/api/server/token"


def test_explicit_token_url_wins():
    config = Config(server_url="https://h", token_url="https://auth.example.org/token")
    assert config.resolved_token_url == "https://auth.example.org/token"


def test_server_url_requires_http_scheme():
    with pytest.raises(ValidationError):
        Config(server_url="ftp://dvid.example.org")


def test_suffix_leading_dot_is_dropped():
    config = Config(leaf_suffix=".drc", merge_suffix=".merge")
    assert config.leaf_suffix == "drc"
    assert config.merge_suffix == "merge"


@pytest.mark.parametrize("kwargs", [
    {"leaf_suffix": ""},
    {"leaf_suffix": "merge", "merge_suffix": ".merge"},
    {"max_merge_depth": 0},
    {"request_timeout": 0},
    {"log_level": "VERBOSE"},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ValidationError):
        Config(**kwargs)


def test_backoff_ceiling_is_raised_to_base_delay():
    config = Config(retry_base_delay=5.0, retry_max_delay=1.0)
    assert config.retry_max_delay == 5.0


def test_instance_urls():
    instance = DVIDInstance.from_config(Config(server_url="http://h:8000", node_key="n1"))
    assert instance.get_node_api_url() == "http://h:8000/api/node/n1"
    assert instance.get_key_base_url("skel") == "http://h:8000/api/node/n1/skel/key"
    assert instance.get_repo_info_url() == "http://h:8000/api/repos/info"
