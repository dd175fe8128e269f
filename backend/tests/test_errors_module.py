from validation_trainer.core.errors import (
    ErrorCode,
    build_error_payload,
    map_status_to_error_code,
)


def test_map_status_to_error_code():
    assert map_status_to_error_code(400) == ErrorCode.VALIDATION_ERROR
    assert map_status_to_error_code(422) == ErrorCode.VALIDATION_ERROR
    assert map_status_to_error_code(404) == ErrorCode.NOT_FOUND
    assert map_status_to_error_code(409) == ErrorCode.CONFLICT
    assert map_status_to_error_code(429) == ErrorCode.RATE_LIMITED
    assert map_status_to_error_code(502) == ErrorCode.UPSTREAM_ERROR
    assert map_status_to_error_code(503) == ErrorCode.UPSTREAM_ERROR
    assert map_status_to_error_code(504) == ErrorCode.UPSTREAM_ERROR
    assert map_status_to_error_code(507) == ErrorCode.STORAGE_ERROR
    assert map_status_to_error_code(500) == ErrorCode.INTERNAL_ERROR


def test_build_error_payload_shape():
    assert build_error_payload(ErrorCode.NOT_FOUND, "missing", "req-1") == {
        "error_code": "NOT_FOUND",
        "message": "missing",
        "request_id": "req-1",
    }
