"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It ensures the project's source directory is added to the Python path so that
modules can be imported properly during test execution, and it provides the
fixtures shared by the test modules: an in-memory workbook builder and a mock
transport standing in for the IFSC lookup API.
"""
import io
import os
import sys

import httpx
import pandas as pd
import pytest

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))


BANK_DETAILS = {
    "SBIN0000001": {"BANK": "SBI", "BRANCH": "X"},
    "HDFC0000123": {"BANK": "HDFC Bank", "BRANCH": "Fort", "IFSC": "HDFC0000123", "CITY": "MUMBAI"},
}


def ifsc_handler(request: httpx.Request) -> httpx.Response:
    code = request.url.path.rsplit("/", 1)[-1]
    if code in BANK_DETAILS:
        return httpx.Response(200, json=BANK_DETAILS[code])
    return httpx.Response(404, json="Not Found")


@pytest.fixture
def bank_details():
    """Bank details served by the mock lookup API, keyed by IFSC."""
    return BANK_DETAILS


@pytest.fixture
def mock_transport():
    """httpx transport answering like the IFSC API for the codes in BANK_DETAILS."""
    return httpx.MockTransport(ifsc_handler)


@pytest.fixture
def make_workbook():
    """
    Fixture returning a function that writes records into .xlsx bytes.

    Returns:
        Callable: ``make_workbook(records, columns=None, sheet_name="Sheet1") -> bytes``
    """
    def _make(records, columns=None, sheet_name="Sheet1"):
        buffer = io.BytesIO()
        pd.DataFrame(records, columns=columns).to_excel(
            buffer, index=False, sheet_name=sheet_name, engine="openpyxl"
        )
        return buffer.getvalue()
    return _make
