from Medical_Conformance.utils.errors import (
    ConformanceError,
    FileProcessingError,
    FoundationError,
    OperationCancelledError,
    ParseError,
    PreconditionError,
    ProblemDetail,
    ReportGenerationError,
)


def test_problem_detail_drops_empty_fields():
    problem = ProblemDetail(title="Error", status=400, detail="Bad")
    payload = problem.model_dump()
    assert payload["title"] == "Error"
    assert "instance" not in payload
    assert "extra" not in payload


def test_foundation_error_wraps_problem():
    error = FoundationError("Oops", status=404)
    assert error.problem.status == 404
    assert str(error) == "Oops"


def test_parse_error_records_serialization():
    error = ParseError("Invalid JSON: boom", serialization="json")
    assert isinstance(error, ConformanceError)
    assert error.serialization == "json"
    assert error.problem.status == 422
    assert error.problem.model_dump()["extra"] == {"serialization": "json"}


def test_file_processing_error_carries_path(tmp_path):
    error = FileProcessingError(tmp_path / "a.json")
    assert error.path.endswith("a.json")
    assert "Failed to load resource from" in str(error)


def test_report_generation_error_carries_format():
    error = ReportGenerationError("html", "disk full")
    assert error.report_format == "html"
    assert error.problem.extra == {"format": "html"}


def test_cancellation_and_precondition_statuses():
    assert OperationCancelledError().problem.status == 499
    assert str(OperationCancelledError()) == "Validation was cancelled"
    assert PreconditionError("Directory not found: x").problem.status == 400
