#!/usr/bin/env python3
"""
AWS ECS Deployment Script
=========================
Builds the web app, containerizes it, pushes the image to Amazon ECR and
rolls the ECS service onto a new task definition revision.

Pipeline:
  1. Build web app               (npm install && npm run build)
  2. Build Docker image          ({ECR_REPOSITORY}:latest)
  3. Authenticate with AWS ECR   (boto3 token → docker login)
  4. Tag & push image to ECR     ({registry}/{ECR_REPOSITORY}:{timestamp})
  5. Fetch current task definition → task-def.json
  6. Strip server-managed fields, set new image → new-task-def.json
  7. Register new task definition revision
  8. Update ECS service to {ECS_SERVICE}:{revision}

Usage:
    AWS_ACCESS_KEY_ID=... AWS_SECRET_ACCESS_KEY=... AWS_ACCOUNT_ID=... \\
        python3 deploy_to_ecs.py

Any failing stage aborts the run with exit code 1. Nothing is rolled back:
an image pushed or a revision registered before the failure stays in AWS.
"""

import base64
import os
import subprocess
import sys
import time
from typing import Callable, Mapping, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from deploy_config import ConfigError, DeployConfig
from task_definition import (
    TaskDefinitionError,
    prepare_task_definition,
    read_json,
    registration_kwargs,
    write_json,
)


# ============================================================================
# ANSI COLORS
# ============================================================================

class C:
    HEADER  = "\033[95m"
    BLUE    = "\033[94m"
    CYAN    = "\033[96m"
    GREEN   = "\033[92m"
    WARNING = "\033[93m"
    FAIL    = "\033[91m"
    ENDC    = "\033[0m"
    BOLD    = "\033[1m"


# ============================================================================
# STAGE REPORTER
# ============================================================================

class StageReporter:
    """Prints consistent STAGE N: description - SUCCESS/FAIL lines."""

    def __init__(self, total: int):
        self.total   = total
        self.current = 0

    def start(self, description: str) -> None:
        self.current += 1
        print(
            f"\n{C.HEADER}{C.BOLD}"
            f"{'─' * 80}\n"
            f"STAGE {self.current}/{self.total}: {description}\n"
            f"{'─' * 80}{C.ENDC}"
        )

    def success(self, detail: str = "") -> None:
        label = f"STAGE {self.current}/{self.total}"
        msg   = f" — {detail}" if detail else ""
        print(f"{C.GREEN}{C.BOLD}✅ {label}: SUCCESS{msg}{C.ENDC}")

    def fail(
        self,
        description: str,
        error: Optional[Exception] = None,
        fix_hint: str = "",
    ) -> None:
        label = f"STAGE {self.current}/{self.total}"
        err   = sys.stderr
        print(f"{C.FAIL}{C.BOLD}❌ {label}: FAIL — {description}{C.ENDC}", file=err)
        if error:
            print(f"{C.FAIL}   Error type   : {type(error).__name__}{C.ENDC}", file=err)
            print(f"{C.FAIL}   Error details: {error}{C.ENDC}", file=err)
            if isinstance(error, ClientError):
                code = error.response.get("Error", {}).get("Code", "n/a")
                msg  = error.response.get("Error", {}).get("Message", "n/a")
                print(f"{C.FAIL}   AWS Error Code   : {code}{C.ENDC}", file=err)
                print(f"{C.FAIL}   AWS Error Message: {msg}{C.ENDC}", file=err)
        if fix_hint:
            print(f"{C.WARNING}   Fix: {fix_hint}{C.ENDC}", file=err)

    @staticmethod
    def info(msg: str) -> None:
        print(f"{C.CYAN}   ℹ  {msg}{C.ENDC}")

    @staticmethod
    def progress(msg: str) -> None:
        print(f"{C.BLUE}   ⟳  {msg}{C.ENDC}")


# ============================================================================
# HELPER — run subprocess and capture output
# ============================================================================

def run(
    cmd: list,
    description: str = "",
    cwd: Optional[str] = None,
    input_text: Optional[str] = None,
) -> Tuple[bool, str, str]:
    """
    Run a subprocess command and block until it exits.

    Returns:
        (success: bool, stdout: str, stderr: str)
    """
    if description:
        print(f"{C.BLUE}   ⟳  {description}{C.ENDC}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            input=input_text,
            check=True,
            capture_output=True,
            text=True,
            env=os.environ.copy(),
        )
        return True, (result.stdout or "").strip(), (result.stderr or "").strip()
    except subprocess.CalledProcessError as exc:
        stdout = exc.stdout.strip() if exc.stdout else ""
        stderr = exc.stderr.strip() if exc.stderr else str(exc)
        return False, stdout, stderr
    except OSError as exc:
        # executable not found, bad cwd
        return False, "", str(exc)


def epoch_millis() -> str:
    return str(int(time.time() * 1000))


# ============================================================================
# ECS DEPLOYER
# ============================================================================

class EcsDeployer:
    """Orchestrates the build → push → register → update pipeline."""

    def __init__(
        self,
        config: DeployConfig,
        ecs_client=None,
        ecr_client=None,
        clock: Optional[Callable[[], str]] = None,
    ):
        self.config = config
        self.clock  = clock or epoch_millis

        self.image_tag : str = ""
        self.image_uri : str = ""
        self.revision  : Optional[int] = None

        self.ecs_client = ecs_client or boto3.client("ecs", **config.boto3_kwargs())
        self.ecr_client = ecr_client or boto3.client("ecr", **config.boto3_kwargs())

        self.reporter = StageReporter(total=8)

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 1 — Build web app
    # ────────────────────────────────────────────────────────────────────────

    def stage_01_build_app(self) -> bool:
        self.reporter.start("Build web app (npm install && npm run build)")
        for cmd in (["npm", "install"], ["npm", "run", "build"]):
            ok, _, err = run(cmd, " ".join(cmd), cwd=self.config.project_dir)
            if not ok:
                self.reporter.fail(
                    f"{' '.join(cmd)} failed",
                    fix_hint=f"Review the build output below:\n{err}",
                )
                return False
        self.reporter.success("app build artifact produced")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 2 — Build Docker image
    # ────────────────────────────────────────────────────────────────────────

    def stage_02_build_image(self) -> bool:
        local_tag = self.config.local_image
        self.reporter.start(f"Build Docker image: {local_tag}")
        ok, _, err = run(
            ["docker", "build", "-t", local_tag, self.config.project_dir],
            f"docker build -t {local_tag} {self.config.project_dir}",
        )
        if not ok:
            self.reporter.fail(
                f"docker build failed for {local_tag}",
                fix_hint=f"Review Dockerfile errors:\n{err}",
            )
            return False
        self.reporter.success(f"{local_tag} built")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 3 — Authenticate with AWS ECR
    # ────────────────────────────────────────────────────────────────────────

    def stage_03_registry_login(self) -> bool:
        registry = self.config.registry_host
        self.reporter.start(f"Authenticate with AWS ECR ({registry})")
        try:
            self.reporter.progress("Requesting ECR auth token via boto3…")
            response  = self.ecr_client.get_authorization_token()
            auth_data = response["authorizationData"][0]
            token     = base64.b64decode(auth_data["authorizationToken"]).decode()
            _user, password = token.split(":", 1)
        except (ClientError, BotoCoreError) as exc:
            self.reporter.fail(
                "Failed to retrieve ECR auth token",
                error=exc,
                fix_hint="Ensure your AWS credentials have ecr:GetAuthorizationToken permission.",
            )
            return False

        ok, _, err = run(
            ["docker", "login", "--username", "AWS", "--password-stdin", registry],
            f"docker login {registry}",
            input_text=password,
        )
        if not ok:
            self.reporter.fail("docker login to ECR failed", fix_hint=f"docker login error: {err}")
            return False

        self.reporter.success(f"Authenticated with AWS ECR at {registry}")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 4 — Tag & push image to ECR
    # ────────────────────────────────────────────────────────────────────────

    def stage_04_tag_and_push(self) -> bool:
        # Taken once; the registered task definition must reference this exact tag.
        self.image_tag = self.clock()
        self.image_uri = self.config.image_uri(self.image_tag)
        local_tag      = self.config.local_image

        self.reporter.start(f"Tag & push image to AWS ECR ({self.image_uri})")

        ok, _, err = run(
            ["docker", "tag", local_tag, self.image_uri],
            f"Tagging {local_tag} → {self.image_uri}",
        )
        if not ok:
            self.reporter.fail(
                f"docker tag failed: {local_tag} → {self.image_uri}",
                fix_hint=f"Error: {err}",
            )
            return False

        ok, _, err = run(["docker", "push", self.image_uri], f"Pushing {self.image_uri}…")
        if not ok:
            self.reporter.fail(
                f"docker push failed for {self.image_uri}",
                fix_hint=(
                    f"Ensure ECR auth succeeded (Stage 3) and the repository "
                    f"'{self.config.repository}' exists in {self.config.region}. Error: {err}"
                ),
            )
            return False

        self.reporter.info(f"Pushed image (not removed on later failure): {self.image_uri}")
        self.reporter.success(f"{self.image_uri} pushed")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 5 — Fetch current task definition
    # ────────────────────────────────────────────────────────────────────────

    def stage_05_fetch_task_definition(self) -> bool:
        service = self.config.service
        path    = self.config.task_def_path
        self.reporter.start(f"Fetch ECS task definition: {service}")
        try:
            response = self.ecs_client.describe_task_definition(taskDefinition=service)
            response.pop("ResponseMetadata", None)
            write_json(path, response)
        except (ClientError, BotoCoreError) as exc:
            self.reporter.fail(
                f"describe-task-definition failed for '{service}'",
                error=exc,
                fix_hint=f"Check that task definition family '{service}' exists in {self.config.region}.",
            )
            return False
        except OSError as exc:
            self.reporter.fail(f"Cannot write {path}", error=exc)
            return False

        self.reporter.success(f"saved to {path}")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 6 — Transform task definition
    # ────────────────────────────────────────────────────────────────────────

    def stage_06_transform_task_definition(self) -> bool:
        src = self.config.task_def_path
        dst = self.config.new_task_def_path
        self.reporter.start("Strip server-managed fields & set new container image")
        try:
            definition = prepare_task_definition(read_json(src), self.image_uri)
            write_json(dst, definition)
        except TaskDefinitionError as exc:
            self.reporter.fail(
                "Task definition could not be transformed",
                error=exc,
                fix_hint=f"Inspect {src}; it must contain at least one container definition.",
            )
            return False
        except OSError as exc:
            self.reporter.fail(f"Cannot read {src} or write {dst}", error=exc)
            return False

        self.reporter.info(f"containerDefinitions[0].image = {self.image_uri}")
        self.reporter.success(f"saved to {dst}")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 7 — Register new task definition revision
    # ────────────────────────────────────────────────────────────────────────

    def stage_07_register_task_definition(self) -> bool:
        path = self.config.new_task_def_path
        self.reporter.start(f"Register new ECS task definition from {path}")
        try:
            kwargs   = registration_kwargs(read_json(path))
            response = self.ecs_client.register_task_definition(**kwargs)
            self.revision = response["taskDefinition"]["revision"]
        except (ClientError, BotoCoreError) as exc:
            self.reporter.fail(
                "register-task-definition was rejected",
                error=exc,
                fix_hint=f"Validate {path} against the RegisterTaskDefinition schema.",
            )
            return False
        except (TaskDefinitionError, OSError) as exc:
            self.reporter.fail(f"Cannot read {path}", error=exc)
            return False

        self.reporter.info(
            f"Registered revision (not deregistered on later failure): "
            f"{self.config.service}:{self.revision}"
        )
        self.reporter.success(f"revision {self.revision}")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # STAGE 8 — Update ECS service
    # ────────────────────────────────────────────────────────────────────────

    def stage_08_update_service(self) -> bool:
        cluster = self.config.cluster
        service = self.config.service
        task_definition = f"{service}:{self.revision}"
        self.reporter.start(f"Update ECS service {cluster}/{service} → {task_definition}")
        try:
            self.ecs_client.update_service(
                cluster=cluster,
                service=service,
                taskDefinition=task_definition,
            )
        except (ClientError, BotoCoreError) as exc:
            self.reporter.fail(
                f"update-service failed for {cluster}/{service}",
                error=exc,
                fix_hint="Check that the cluster and service exist in this region.",
            )
            return False

        self.reporter.success(f"{service} now targets {task_definition}")
        return True

    # ────────────────────────────────────────────────────────────────────────
    # MAIN PIPELINE
    # ────────────────────────────────────────────────────────────────────────

    def run(self) -> bool:
        print(f"\n{C.CYAN}{C.BOLD}{'=' * 80}")
        print("   AWS ECS Deployment")
        print(f"   Region : {self.config.region}")
        print(f"   Cluster: {self.config.cluster}   Service: {self.config.service}")
        print(f"{'=' * 80}{C.ENDC}")

        stages = [
            ("Stage 1", self.stage_01_build_app),
            ("Stage 2", self.stage_02_build_image),
            ("Stage 3", self.stage_03_registry_login),
            ("Stage 4", self.stage_04_tag_and_push),
            ("Stage 5", self.stage_05_fetch_task_definition),
            ("Stage 6", self.stage_06_transform_task_definition),
            ("Stage 7", self.stage_07_register_task_definition),
            ("Stage 8", self.stage_08_update_service),
        ]

        failed_at = None
        for label, fn in stages:
            if not fn():
                failed_at = label
                break   # later stages depend on earlier ones

        print(f"\n{C.BOLD}{'=' * 80}{C.ENDC}")
        if failed_at is None:
            print(f"{C.GREEN}{C.BOLD}✅ Deployment successful!{C.ENDC}")
            print(f"{C.GREEN}🔗 Image: {self.image_uri}{C.ENDC}")
            return True

        print(f"{C.FAIL}{C.BOLD}❌ Deployment failed at {failed_at}{C.ENDC}", file=sys.stderr)
        if self.image_uri and failed_at not in ("Stage 1", "Stage 2", "Stage 3", "Stage 4"):
            print(f"{C.WARNING}   Pushed image left in ECR: {self.image_uri}{C.ENDC}", file=sys.stderr)
        if self.revision is not None:
            print(
                f"{C.WARNING}   Registered revision left active: "
                f"{self.config.service}:{self.revision}{C.ENDC}",
                file=sys.stderr,
            )
        return False


# ============================================================================
# ENTRY POINT
# ============================================================================

def main(environ: Optional[Mapping[str, str]] = None) -> None:
    config = DeployConfig.from_env(environ)
    try:
        config.validate()
    except ConfigError as exc:
        print(
            f"{C.FAIL}❌ Missing AWS credentials. Please set environment variables: "
            f"{', '.join(exc.missing)}{C.ENDC}",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        deployer = EcsDeployer(config)
        success  = deployer.run()
    except Exception as exc:                               # noqa: BLE001
        print(f"{C.FAIL}❌ Deployment failed: {exc}{C.ENDC}", file=sys.stderr)
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
