"""Pytest configuration and shared fixtures for anomaly detector tests."""

import json
from types import SimpleNamespace

import pytest

from anomaly_detector.analysis import GeminiAnomalyAnalyzer
from anomaly_detector.config import Settings
from anomaly_detector.models import TransactionRow
from anomaly_detector.persistence import SupabaseTransactionStore


HEADER = "BA,monthly,actCode,amount"

TWO_ROW_CSV = (
    f"{HEADER}\n"
    "1000,202401,5100,500\n"
    "1000,202401,5100,999999\n"
).encode("utf-8")

TWO_ROW_ANALYSIS = {
    "summary": "พบรายการผิดปกติ 1 รายการ",
    "anomalies": [
        {
            "id": 1,
            "actCode": "5100",
            "monthly": "202401",
            "amount": 999999,
            "reason": "ยอดเงินสูงกว่ารายการอื่นในบัญชีเดียวกันอย่างมาก",
            "severity": "High",
        }
    ],
}


class FakeAPIError(Exception):
    """Mimics postgrest's APIError, which carries a ``message`` attribute."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class FakeSupabaseClient:
    """Records insert batches; optionally fails on the Nth execute() call."""

    def __init__(self, fail_on_call=None, error_message="duplicate key value"):
        self.fail_on_call = fail_on_call
        self.error_message = error_message
        self.calls = 0
        self.inserted = []

    def table(self, name):
        return _FakeQuery(self, name)


class _FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.records = None

    def insert(self, records):
        self.records = records
        return self

    def execute(self):
        self.client.calls += 1
        if self.client.fail_on_call is not None and self.client.calls >= self.client.fail_on_call:
            raise FakeAPIError(self.client.error_message)
        self.client.inserted.append((self.table, list(self.records)))
        return SimpleNamespace(data=self.records)


class StubGeminiModel:
    """Stands in for genai.GenerativeModel and records every request."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.requests = []

    def generate_content(self, prompt, generation_config=None):
        self.requests.append({"prompt": prompt, "generation_config": generation_config})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def make_csv(rows, header=HEADER):
    """Build CSV bytes from a header line and row tuples."""
    lines = [header] + [",".join(str(cell) for cell in row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_rows(count, amount=100.0):
    return [
        TransactionRow(BA="1000", monthly="202401", actCode=f"{5100 + i % 7}", amount=amount + i)
        for i in range(count)
    ]


@pytest.fixture
def two_row_csv():
    """CSV with one obviously outlying amount at index 1."""
    return TWO_ROW_CSV


@pytest.fixture
def two_row_analysis_json():
    return json.dumps(TWO_ROW_ANALYSIS, ensure_ascii=False)


@pytest.fixture
def sample_rows():
    """Factory fixture producing ``count`` valid transaction rows."""
    return make_rows


@pytest.fixture
def csv_bytes():
    """Factory fixture building CSV bytes from row tuples."""
    return make_csv


@pytest.fixture
def supabase_client():
    """Factory fixture for fake Supabase clients."""
    return FakeSupabaseClient


@pytest.fixture
def gemini_model():
    """Factory fixture for stub Gemini models."""
    return StubGeminiModel


@pytest.fixture
def settings():
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        supabase_url=None,
        supabase_key=None,
        gemini_api_key="test-gemini-key",
        log_format="text",
    )


@pytest.fixture
def enabled_store():
    """Store with persistence enabled and a fresh fake client."""
    client = FakeSupabaseClient()
    store = SupabaseTransactionStore(
        supabase_url="https://example.supabase.co",
        supabase_key="service-key",
        client=client,
    )
    return store, client


@pytest.fixture
def disabled_store():
    return SupabaseTransactionStore()


@pytest.fixture
def stub_analyzer(two_row_analysis_json):
    """Analyzer answering with the two-row scenario result."""
    model = StubGeminiModel(text=two_row_analysis_json)
    return GeminiAnomalyAnalyzer(api_key="test-gemini-key", model=model), model
