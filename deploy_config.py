"""
Deployment configuration for the ECS deploy pipeline.

All settings come from environment variables and are resolved once into a
DeployConfig, which is then handed to the deployer.

    AWS_ACCESS_KEY_ID      required
    AWS_SECRET_ACCESS_KEY  required
    AWS_ACCOUNT_ID         required (ECR registry host)
    AWS_SESSION_TOKEN      optional
    AWS_REGION             default: us-east-1
    ECR_REPOSITORY         default: my-react-app
    ECS_CLUSTER            default: my-cluster
    ECS_SERVICE            default: my-service
    DEPLOY_PROJECT_DIR     default: current directory
"""

import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_REGION     = "us-east-1"
DEFAULT_REPOSITORY = "my-react-app"
DEFAULT_CLUSTER    = "my-cluster"
DEFAULT_SERVICE    = "my-service"
DEFAULT_PROJECT_DIR = "."

# Written to and read back from within the same run; overwritten every time.
TASK_DEF_FILE     = "task-def.json"
NEW_TASK_DEF_FILE = "new-task-def.json"

REQUIRED_ENV_VARS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_ACCOUNT_ID")


class ConfigError(Exception):
    """Raised when required configuration is missing."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing required environment variables: {', '.join(missing)}")


@dataclass(frozen=True)
class DeployConfig:
    access_key_id: str
    secret_access_key: str
    account_id: str
    region: str = DEFAULT_REGION
    repository: str = DEFAULT_REPOSITORY
    cluster: str = DEFAULT_CLUSTER
    service: str = DEFAULT_SERVICE
    project_dir: str = DEFAULT_PROJECT_DIR
    session_token: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeployConfig":
        """Resolve every setting once. Empty optional values fall back to defaults."""
        env = os.environ if environ is None else environ
        return cls(
            access_key_id=env.get("AWS_ACCESS_KEY_ID", "").strip(),
            secret_access_key=env.get("AWS_SECRET_ACCESS_KEY", "").strip(),
            account_id=env.get("AWS_ACCOUNT_ID", "").strip(),
            region=env.get("AWS_REGION") or DEFAULT_REGION,
            repository=env.get("ECR_REPOSITORY") or DEFAULT_REPOSITORY,
            cluster=env.get("ECS_CLUSTER") or DEFAULT_CLUSTER,
            service=env.get("ECS_SERVICE") or DEFAULT_SERVICE,
            project_dir=env.get("DEPLOY_PROJECT_DIR") or DEFAULT_PROJECT_DIR,
            session_token=env.get("AWS_SESSION_TOKEN") or None,
        )

    def missing_credentials(self) -> List[str]:
        values = {
            "AWS_ACCESS_KEY_ID":     self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
            "AWS_ACCOUNT_ID":        self.account_id,
        }
        return [name for name in REQUIRED_ENV_VARS if not values[name]]

    def validate(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ConfigError(missing)

    # ── Derived values ──────────────────────────────────────────────────────

    @property
    def registry_host(self) -> str:
        return f"{self.account_id}.dkr.ecr.{self.region}.amazonaws.com"

    @property
    def local_image(self) -> str:
        return f"{self.repository}:latest"

    def image_uri(self, tag: str) -> str:
        return f"{self.registry_host}/{self.repository}:{tag}"

    @property
    def task_def_path(self) -> str:
        return os.path.join(self.project_dir, TASK_DEF_FILE)

    @property
    def new_task_def_path(self) -> str:
        return os.path.join(self.project_dir, NEW_TASK_DEF_FILE)

    def boto3_kwargs(self) -> Dict[str, str]:
        """Keyword arguments for boto3.client() using the configured credentials."""
        kwargs = {
            "region_name":           self.region,
            "aws_access_key_id":     self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
        }
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs
