# tests/core/test_error_handling.py

import pytest
from unittest import mock

from botocore.exceptions import ClientError, EndpointConnectionError

from metastamp.core.exceptions import S3Error
from metastamp.core.error_handling import (
    RETRYABLE_S3_ERROR_CODES,
    with_s3_error_mapping,
    retry_s3_operation,
    BatchOperationContextManager,
)


def _client_error(code):
    return ClientError(
        error_response={"Error": {"Code": code, "Message": "Details"}},
        operation_name="GetObject",
    )


def _mapped(code):
    """S3Error chained to a ClientError, as with_s3_error_mapping produces it."""
    error = S3Error(f"S3 operation failed: {code}")
    error.__cause__ = _client_error(code)
    return error


@pytest.fixture
def mock_logger():
    """Mock the loggers the decorators obtain through logging.getLogger."""
    with mock.patch("logging.getLogger") as mock_get_logger:
        mock_log_instance = mock.Mock()
        mock_get_logger.return_value = mock_log_instance
        yield mock_log_instance


# --- Tests for @with_s3_error_mapping ---

def test_s3_error_mapping_wraps_client_error(mock_logger):
    """Test that a botocore ClientError becomes an S3Error."""
    @with_s3_error_mapping
    def get_object():
        raise _client_error("NoSuchKey")

    with pytest.raises(S3Error) as excinfo:
        get_object()

    assert "S3 operation failed in get_object" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, ClientError)
    args, kwargs = mock_logger.error.call_args
    assert kwargs.get("exc_info") is True


def test_s3_error_mapping_wraps_botocore_error(mock_logger):
    @with_s3_error_mapping
    def list_objects():
        raise EndpointConnectionError(endpoint_url="https://s3.example.com")

    with pytest.raises(S3Error):
        list_objects()


def test_s3_error_mapping_leaves_other_errors_alone(mock_logger):
    @with_s3_error_mapping
    def broken():
        raise ValueError("not S3")

    with pytest.raises(ValueError):
        broken()
    mock_logger.error.assert_not_called()


def test_s3_error_mapping_passes_results_through(mock_logger):
    @with_s3_error_mapping
    def works():
        return "ok"

    assert works() == "ok"


# --- Tests for @retry_s3_operation ---

def test_retry_s3_operation_success_on_first_attempt(mock_logger):
    @retry_s3_operation(max_attempts=3, initial_delay=0.01)
    def func_succeeds():
        return "success"

    assert func_succeeds() == "success"
    mock_logger.info.assert_not_called()
    mock_logger.error.assert_not_called()


@mock.patch("time.sleep", return_value=None)
def test_retry_s3_operation_retries_throttling(mock_time_sleep, mock_logger):
    """Test success after a retryable throttling error."""
    mock_s3_op = mock.Mock(side_effect=[_mapped("SlowDown"), _mapped("ThrottlingException"), "success"])

    @retry_s3_operation(max_attempts=3, initial_delay=0.01)
    def func_to_retry():
        return mock_s3_op()

    assert func_to_retry() == "success"
    assert mock_s3_op.call_count == 3
    assert mock_time_sleep.call_count == 2
    assert mock_logger.info.call_count == 2


@mock.patch("time.sleep", return_value=None)
def test_retry_s3_operation_backs_off_exponentially(mock_time_sleep, mock_logger):
    mock_s3_op = mock.Mock(side_effect=_mapped("SlowDown"))

    @retry_s3_operation(max_attempts=4, initial_delay=1, backoff_factor=2)
    def func_fails():
        return mock_s3_op()

    with pytest.raises(S3Error):
        func_fails()

    assert [call.args[0] for call in mock_time_sleep.call_args_list] == [1, 2, 4]


@mock.patch("time.sleep", return_value=None)
def test_retry_s3_operation_fails_after_max_attempts(mock_time_sleep, mock_logger):
    mock_s3_op = mock.Mock(side_effect=_mapped("RequestTimeout"))

    @retry_s3_operation(max_attempts=3, initial_delay=0.01)
    def func_fails_persistently():
        return mock_s3_op()

    with pytest.raises(S3Error):
        func_fails_persistently()

    assert mock_s3_op.call_count == 3
    assert mock_time_sleep.call_count == 2
    mock_logger.error.assert_called_once()
    assert "failed after 3 attempts" in mock_logger.error.call_args[0][0]


@mock.patch("time.sleep", return_value=None)
def test_retry_s3_operation_does_not_retry_non_retryable_codes(mock_time_sleep, mock_logger):
    """Test that e.g. AccessDenied fails on the first attempt."""
    mock_s3_op = mock.Mock(side_effect=_mapped("AccessDenied"))

    @retry_s3_operation(max_attempts=3, initial_delay=0.01)
    def func_denied():
        return mock_s3_op()

    with pytest.raises(S3Error):
        func_denied()

    assert mock_s3_op.call_count == 1
    mock_time_sleep.assert_not_called()


@mock.patch("time.sleep", return_value=None)
def test_retry_s3_operation_does_not_retry_plain_s3_errors(mock_time_sleep, mock_logger):
    mock_s3_op = mock.Mock(side_effect=S3Error("no cause"))

    @retry_s3_operation(max_attempts=3, initial_delay=0.01)
    def func_plain():
        return mock_s3_op()

    with pytest.raises(S3Error):
        func_plain()
    assert mock_s3_op.call_count == 1


@mock.patch("time.sleep", return_value=None)
def test_retry_s3_operation_non_s3error_not_retried(mock_time_sleep, mock_logger):
    mock_op = mock.Mock(side_effect=ValueError("Not an S3 error"))

    @retry_s3_operation(max_attempts=3, initial_delay=0.01)
    def func_raises_other_error():
        return mock_op()

    with pytest.raises(ValueError):
        func_raises_other_error()
    assert mock_op.call_count == 1
    mock_time_sleep.assert_not_called()


def test_retryable_codes_cover_throttling():
    assert "SlowDown" in RETRYABLE_S3_ERROR_CODES
    assert "ThrottlingException" in RETRYABLE_S3_ERROR_CODES
    assert "AccessDenied" not in RETRYABLE_S3_ERROR_CODES


# --- Tests for BatchOperationContextManager ---

def test_batch_manager_no_errors(mock_logger):
    with BatchOperationContextManager(operation_name="TestOp Success"):
        pass

    mock_logger.info.assert_any_call("Starting TestOp Success.")
    mock_logger.info.assert_any_call("TestOp Success completed successfully.")
    mock_logger.warning.assert_not_called()


def test_batch_manager_with_errors_added(mock_logger):
    """Test collecting and logging errors via add_error."""
    with BatchOperationContextManager(operation_name="TestOp Errors") as manager:
        manager.add_error(error_message="First item failed", item_identifier="item1")
        manager.add_error(error_message="Second item failed", item_identifier="item2")

    assert manager.errors == [
        {"item": "item1", "error": "First item failed"},
        {"item": "item2", "error": "Second item failed"},
    ]
    mock_logger.warning.assert_any_call("TestOp Errors completed with 2 error(s).")
    mock_logger.error.assert_any_call("  Error 1/2 for item 'item1': First item failed")
    mock_logger.error.assert_any_call("  Error 2/2 for item 'item2': Second item failed")


def test_batch_manager_handles_exception_in_context(mock_logger):
    class MyContextError(Exception):
        pass

    with pytest.raises(MyContextError):
        with BatchOperationContextManager(operation_name="TestOp Unhandled"):
            raise MyContextError("Something bad happened")

    message = mock_logger.error.call_args[0][0]
    assert "TestOp Unhandled failed due to an unhandled exception" in message
    assert isinstance(mock_logger.error.call_args[1]["exc_info"][1], MyContextError)
