from __future__ import annotations

from tiki import validation
from tiki.models import Task


def _task(**fields) -> Task:
    return Task(id=fields.pop("id", "TIKI-AAAAAA"), title=fields.pop("title", "Fix login"), **fields)


def test_valid_task_has_no_errors() -> None:
    errors = validation.validate(_task())
    assert not errors.has_errors()
    assert str(errors) == "no validation errors"


def test_quick_validate_collects_every_failure() -> None:
    task = _task(title="  ", status="someday", type="chore", priority=9, points=11)
    errors = validation.quick_validate(task)
    assert [error.field for error in errors] == ["title", "status", "type", "priority", "points"]
    assert errors.by_field("priority")[0].code == validation.CODE_OUT_OF_RANGE
    assert errors.by_field("status")[0].code == validation.CODE_INVALID_ENUM
    assert errors.has_field("title")


def test_points_respect_configured_maximum() -> None:
    task = _task(points=15)
    assert validation.quick_validate(task).has_field("points")
    assert not validation.quick_validate(task, max_points=20).has_errors()


def test_full_validation_checks_id_and_title_length() -> None:
    task = _task(id="bad/id", title="x" * 201)
    errors = validation.validate(task)
    assert errors.by_field("id")[0].code == validation.CODE_INVALID_FORMAT
    assert errors.by_field("title")[0].code == validation.CODE_TOO_LONG


def test_bool_is_not_a_valid_priority() -> None:
    assert validation.validate_field(_task(priority=True), "priority") is not None


def test_validate_field_unknown_name_is_none() -> None:
    assert validation.validate_field(_task(), "description") is None
    assert validation.is_valid(_task())
