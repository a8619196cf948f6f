from types import SimpleNamespace

import pytest

from catrep.core import auth
from catrep.core.adapters.dynamodb import DynamoStatusStore
from catrep.core.adapters.glue import GlueCatalogAdapter
from catrep.core.auth import AuthError, client_config, get_session
from catrep.core.context import build_context
from fakes import make_config


def test_client_config_retries_ten_times():
    assert client_config().retries == {"max_attempts": 10, "mode": "standard"}


def test_unknown_profile_is_an_auth_error(monkeypatch, tmp_path):
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "credentials"))

    with pytest.raises(AuthError, match="aws configure --profile nope"):
        get_session(profile="nope", region="eu-west-1")


def test_build_context_wires_one_client_per_service(monkeypatch):
    created = []

    def _session(profile=None, region=None):
        def _client(name, config=None):
            created.append((name, config.retries["max_attempts"]))
            return SimpleNamespace(name=name)

        return SimpleNamespace(client=_client)

    monkeypatch.setattr(auth, "get_session", _session)

    ctx = build_context(make_config())

    assert sorted(name for name, _ in created) == ["dynamodb", "glue", "s3", "sns", "sqs"]
    assert {attempts for _, attempts in created} == {10}
    assert isinstance(ctx.catalog, GlueCatalogAdapter)
    assert isinstance(ctx.status, DynamoStatusStore)
