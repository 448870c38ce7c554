import base64
import subprocess
from unittest.mock import MagicMock

import pytest

from deploy_config import DeployConfig
from tests.consts import TEST_ACCOUNT, describe_response


@pytest.fixture
def config(tmp_path):
    return DeployConfig(
        access_key_id="AKIATEST",
        secret_access_key="secret",
        account_id=TEST_ACCOUNT,
        region="us-west-2",
        repository="app",
        project_dir=str(tmp_path),
    )


@pytest.fixture
def ecs_client():
    client = MagicMock(name="ecs")
    client.describe_task_definition.return_value = describe_response()
    client.register_task_definition.return_value = {"taskDefinition": {"revision": 7}}
    client.update_service.return_value = {"service": {"taskDefinition": "my-service:7"}}
    return client


@pytest.fixture
def ecr_client():
    client = MagicMock(name="ecr")
    token = base64.b64encode(b"AWS:registry-password").decode()
    client.get_authorization_token.return_value = {
        "authorizationData": [
            {"authorizationToken": token, "proxyEndpoint": f"https://{TEST_ACCOUNT}.dkr.ecr.us-west-2.amazonaws.com"}
        ]
    }
    return client


class FakeSubprocess:
    """Records commands passed to subprocess.run; fails the ones matching fail_on."""

    def __init__(self):
        self.calls = []
        self.fail_on = None

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.fail_on and cmd[: len(self.fail_on)] == self.fail_on:
            raise subprocess.CalledProcessError(1, cmd, output="", stderr="denied: simulated failure")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    @property
    def commands(self):
        return [cmd for cmd, _ in self.calls]


@pytest.fixture
def fake_subprocess(monkeypatch):
    fake = FakeSubprocess()
    monkeypatch.setattr("deploy_to_ecs.subprocess.run", fake)
    return fake
