from typing import Generic, TypeVar, Optional, Callable, Any, Dict, Union
from http import HTTPStatus

T = TypeVar('T')  # Generic type variable
U = TypeVar('U')  # Type produced by a chained step


class Result(Generic[T]):
    """
    Outcome of a pipeline stage: either data or an error message.

    Stages of the enrichment pipeline never raise to their caller. They hand
    back a Result, and the API layer turns a failed Result into a JSON error
    body carrying the Result's status code.

    Attributes:
        success (bool): Indicates if the stage succeeded
        data (Optional[T]): The stage output (only present when success is True)
        error (Optional[str]): Error message (only present when success is False)
        status_code (HTTPStatus): HTTP status reported for this outcome
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None
    ):
        self.success = success
        self.data = data
        self.error = error

        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        elif isinstance(status_code, HTTPStatus):
            self.status_code = status_code
        else:
            self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(cls, data: T, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 200 OK.

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.BAD_REQUEST) -> "Result[T]":
        """
        Create a failed Result with the provided error message.

        Args:
            error (str): The error message describing the failure
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 400 BAD_REQUEST.

        Returns:
            Result[T]: A failed Result containing the error message
        """
        return cls(success=False, error=error, status_code=status_code)

    @classmethod
    def not_found(cls, error: str = "Resource not found") -> "Result[T]":
        """Failed Result with 404 status, used for unknown sessions."""
        return cls(success=False, error=error, status_code=HTTPStatus.NOT_FOUND)

    @classmethod
    def column_not_found(cls, column: str) -> "Result[T]":
        """
        Failed Result for a spreadsheet that lacks the lookup column.

        Args:
            column (str): The configured lookup column name

        Returns:
            Result[T]: A failed Result with 404 status naming the column
        """
        return cls(
            success=False,
            error=f'Column "{column}" not found in Excel file',
            status_code=HTTPStatus.NOT_FOUND
        )

    @classmethod
    def invalid_input(cls, error: str = "Invalid input data") -> "Result[T]":
        """Failed Result with 422 status, used when an upload cannot be decoded."""
        return cls(success=False, error=error, status_code=HTTPStatus.UNPROCESSABLE_ENTITY)

    @classmethod
    def conflict(cls, error: str) -> "Result[T]":
        """Failed Result with 409 status, used when an action is not enabled yet."""
        return cls(success=False, error=error, status_code=HTTPStatus.CONFLICT)

    @classmethod
    def server_error(cls, error: str = "Internal server error") -> "Result[T]":
        """Failed Result with 500 status."""
        return cls(success=False, error=error, status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def unwrap(self, default: Optional[T] = None) -> Optional[T]:
        """
        Safely access the data value with an optional default value.

        Args:
            default (Optional[T], optional): Value to return if the Result is a failure. Defaults to None.

        Returns:
            Optional[T]: The data value if successful, otherwise the default value
        """
        return self.data if self.is_success() else default

    def and_then(self, fn: Callable[[T], "Result[U]"]) -> "Result[U]":
        """
        Chain pipeline stages that return Result objects.

        A failure short-circuits and is handed back unchanged; a success feeds
        its data to the next stage.

        Args:
            fn (Callable[[T], Result[U]]): Next stage, taking the success data

        Returns:
            Result[U]: Either the original failure or the next stage's Result
        """
        if not self.is_success():
            return Result.fail(self.error or "", status_code=self.status_code)  # type: ignore
        return fn(self.data)  # type: ignore

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Result to a dictionary suitable for API responses.

        Returns:
            Dict[str, Any]: Dictionary containing status, status_code, data/error
        """
        response = {
            "success": self.success,
            "status_code": self.status_code.value,
            "status": self.status_code.phrase
        }

        if self.is_success():
            response["data"] = self.data
        else:
            response["error"] = self.error

        return response

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            # Row sets get long
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}): {self.error}"

    def __repr__(self) -> str:
        return f"Result(success={self.success}, status_code={self.status_code!r}, data={self.data!r}, error={self.error!r})"
