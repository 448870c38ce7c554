"""
ECS task definition helpers.

describe-task-definition returns fields that register-task-definition
rejects, so a fetched definition has to be cleaned before it can be
registered again as a new revision.
"""

import copy
import json
from datetime import datetime
from typing import Any, Dict

# Assigned by ECS on registration; never accepted as input.
SERVER_MANAGED_FIELDS = (
    "taskDefinitionArn",
    "revision",
    "status",
    "requiresAttributes",
    "compatibilities",
    "registeredAt",
    "registeredBy",
)


class TaskDefinitionError(ValueError):
    """Raised when a task definition document cannot be read or transformed."""


def prepare_task_definition(document: Dict[str, Any], image_uri: str) -> Dict[str, Any]:
    """
    Build a registrable task definition from a describe-task-definition response.

    Args:
        document:  the response, i.e. {"taskDefinition": {...}}
        image_uri: image reference for the first container definition

    Returns:
        A new dict holding the inner definition without the server-managed
        fields, with containerDefinitions[0].image replaced.
    """
    if not isinstance(document, dict) or not isinstance(document.get("taskDefinition"), dict):
        raise TaskDefinitionError("Document has no 'taskDefinition' object")

    definition = copy.deepcopy(document["taskDefinition"])
    for field in SERVER_MANAGED_FIELDS:
        definition.pop(field, None)

    containers = definition.get("containerDefinitions")
    if not isinstance(containers, list) or not containers:
        raise TaskDefinitionError(
            "Task definition has no container definitions; cannot set the image"
        )
    if not isinstance(containers[0], dict):
        raise TaskDefinitionError("First container definition is not an object")

    containers[0]["image"] = image_uri
    return definition


def registration_kwargs(definition: Dict[str, Any]) -> Dict[str, Any]:
    # boto3 rejects explicit nulls for optional parameters
    return {key: value for key, value in definition.items() if value is not None}


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_json(path: str, data: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, default=_json_default)


def read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except json.JSONDecodeError as exc:
        raise TaskDefinitionError(f"{path} is not valid JSON: {exc}") from exc
