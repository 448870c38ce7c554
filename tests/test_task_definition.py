import copy
import json

import pytest

from task_definition import (
    SERVER_MANAGED_FIELDS,
    TaskDefinitionError,
    prepare_task_definition,
    read_json,
    registration_kwargs,
    write_json,
)
from tests.consts import describe_response

NEW_IMAGE = "123456789012.dkr.ecr.us-west-2.amazonaws.com/app:1700000000000"


def test_removes_exactly_the_server_managed_fields():
    document = describe_response()
    original = document["taskDefinition"]

    result = prepare_task_definition(document, NEW_IMAGE)

    assert set(result) == set(original) - set(SERVER_MANAGED_FIELDS)


def test_preserves_everything_except_removed_fields_and_image():
    document = describe_response()
    expected = copy.deepcopy(document["taskDefinition"])
    for field in SERVER_MANAGED_FIELDS:
        expected.pop(field)
    expected["containerDefinitions"][0]["image"] = NEW_IMAGE

    assert prepare_task_definition(document, NEW_IMAGE) == expected


def test_sets_image_on_first_container_only():
    document = describe_response()
    document["taskDefinition"]["containerDefinitions"].append({"name": "sidecar", "image": "envoy:1"})

    result = prepare_task_definition(document, NEW_IMAGE)

    assert result["containerDefinitions"][0]["image"] == NEW_IMAGE
    assert result["containerDefinitions"][1]["image"] == "envoy:1"


def test_does_not_mutate_input():
    document = describe_response()
    snapshot = copy.deepcopy(document)

    prepare_task_definition(document, NEW_IMAGE)

    assert document == snapshot


def test_tolerates_absent_server_managed_fields():
    document = {"taskDefinition": {"family": "svc", "containerDefinitions": [{"name": "web"}]}}

    result = prepare_task_definition(document, NEW_IMAGE)

    assert result == {"family": "svc", "containerDefinitions": [{"name": "web", "image": NEW_IMAGE}]}


@pytest.mark.parametrize(
    "document",
    [
        {"taskDefinition": {"family": "svc", "containerDefinitions": []}},
        {"taskDefinition": {"family": "svc"}},
        {"taskDefinition": {"family": "svc", "containerDefinitions": ["web"]}},
        {"family": "svc"},
    ],
)
def test_rejects_unusable_documents(document):
    with pytest.raises(TaskDefinitionError):
        prepare_task_definition(document, NEW_IMAGE)


def test_registration_kwargs_drops_nulls():
    assert registration_kwargs({"family": "svc", "taskRoleArn": None, "cpu": "256"}) == {
        "family": "svc",
        "cpu": "256",
    }


def test_temp_file_round_trip(tmp_path):
    raw_path = tmp_path / "task-def.json"
    new_path = tmp_path / "new-task-def.json"
    document = describe_response()
    document.pop("ResponseMetadata")

    write_json(str(raw_path), document)
    fetched = read_json(str(raw_path))
    assert fetched["taskDefinition"]["registeredAt"] == "2024-01-02T03:04:05+00:00"

    write_json(str(new_path), prepare_task_definition(fetched, NEW_IMAGE))
    registered = json.loads(new_path.read_text(encoding="utf-8"))

    expected = {k: v for k, v in fetched["taskDefinition"].items() if k not in SERVER_MANAGED_FIELDS}
    expected["containerDefinitions"][0]["image"] = NEW_IMAGE
    assert registered == expected


def test_read_json_rejects_malformed_file(tmp_path):
    path = tmp_path / "task-def.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(TaskDefinitionError, match="not valid JSON"):
        read_json(str(path))
