"""
Anomaly analysis with Google Gemini.

Sends a bounded sample of the uploaded rows to Gemini with an auditor prompt
and a declared JSON response schema, then decodes the reply into an
``AnalysisResult``. No anomaly scoring happens locally.
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai
from pydantic import ValidationError

from . import observability
from .config import Settings
from .errors import AnalysisError, ConfigurationError, EmptyResponseError
from .logger import log_analysis_complete, log_analysis_request
from .models import AnalysisResult, Severity, TransactionRow

logger = logging.getLogger(__name__)

FALLBACK_ERROR_MESSAGE = "Failed to analyze data with AI."

_FENCE_RE = re.compile(r"```json\n?|```")

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "summary": {
            "type": "STRING",
            "description": "สรุปภาพรวมคุณภาพข้อมูลและความผิดปกติที่พบ (ภาษาไทย)",
        },
        "anomalies": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {
                        "type": "INTEGER",
                        "description": "ลำดับแถวของข้อมูล (เริ่มจาก 0)",
                    },
                    "actCode": {"type": "STRING"},
                    "monthly": {"type": "STRING"},
                    "amount": {"type": "NUMBER"},
                    "reason": {
                        "type": "STRING",
                        "description": "เหตุผลที่ข้อมูลนี้ผิดปกติ (ภาษาไทย)",
                    },
                    "severity": {
                        "type": "STRING",
                        "format": "enum",
                        "enum": [severity.value for severity in Severity],
                    },
                },
                "required": ["id", "actCode", "monthly", "amount", "reason", "severity"],
            },
        },
    },
    "required": ["summary", "anomalies"],
}


def build_prompt(sample: Sequence[TransactionRow]) -> str:
    """Embed the JSON-serialized sample in the auditor instructions."""
    dataset = json.dumps([row.model_dump() for row in sample], ensure_ascii=False)
    return (
        "You are an expert financial auditor AI. Review the transaction dataset below.\n"
        "Columns: BA (business area), monthly (period, YYYYMM), "
        "actCode (account code), amount (transaction value).\n"
        "\n"
        "Tasks:\n"
        "1. Find rows whose amount is an outlier, either against other rows with the "
        "same actCode or against the overall distribution.\n"
        "2. Report at most the top 10 most significant anomalies. Use the 0-based row "
        "position in this dataset as the id.\n"
        "3. Return strictly valid JSON that matches the response schema.\n"
        "4. Write every reason and the summary in Thai (ภาษาไทย).\n"
        "\n"
        f"Dataset (First {len(sample)} rows):\n"
        f"{dataset}"
    )


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_analysis_response(text: Optional[str]) -> AnalysisResult:
    """
    Decode the model's reply into an AnalysisResult.

    Raises:
        EmptyResponseError: If the reply has no text
        AnalysisError: If the text is not valid JSON or does not match the schema
    """
    if not text or not text.strip():
        raise EmptyResponseError()

    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Invalid JSON from Gemini: {e.msg}") from e

    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise AnalysisError(
            f"Unexpected response shape from Gemini: {location}: {first['msg']}"
        ) from e


def _response_text(response: Any) -> Optional[str]:
    # Blocked or candidate-less responses raise on .text
    try:
        return response.text
    except (ValueError, AttributeError):
        return None


class GeminiAnomalyAnalyzer:
    """Delegates outlier detection on transaction rows to a Gemini model."""

    MAX_ROWS = 1500

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.5-flash",
        temperature: float = 0.1,
        max_rows: int = MAX_ROWS,
        model: Optional[Any] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            api_key: Gemini API key; required for every call
            model_name: Gemini model identifier
            temperature: Sampling temperature
            max_rows: Number of leading rows submitted for analysis
            model: Pre-built GenerativeModel-compatible object (skips genai setup)
        """
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self.max_rows = max_rows
        self._model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiAnomalyAnalyzer":
        return cls(
            api_key=settings.gemini_api_key,
            model_name=settings.gemini_model,
            temperature=settings.gemini_temperature,
            max_rows=settings.analysis_max_rows,
        )

    def _get_model(self):
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
            logger.info(f"Gemini model initialized: {self.model_name}")
        return self._model

    def _generation_config(self) -> genai.GenerationConfig:
        return genai.GenerationConfig(
            temperature=self.temperature,
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
        )

    async def detect_anomalies(self, rows: Sequence[TransactionRow]) -> AnalysisResult:
        """
        Ask Gemini for the most significant amount outliers.

        Only the first ``max_rows`` rows are submitted; anomaly ids refer to
        positions within that sample.

        Args:
            rows: Full ordered row sequence from ingestion

        Returns:
            AnalysisResult with a Thai summary and ranked anomalies

        Raises:
            ConfigurationError: If no API key is configured
            EmptyResponseError: If Gemini returns no text
            AnalysisError: On transport, JSON or schema failures
        """
        if not self.api_key:
            raise ConfigurationError(
                "Gemini API key is not configured. Set GEMINI_API_KEY or GOOGLE_API_KEY."
            )

        sample: List[TransactionRow] = list(rows[: self.max_rows])
        prompt = build_prompt(sample)
        log_analysis_request(logger, self.model_name, len(sample), len(rows))

        start_time = time.perf_counter()
        try:
            model = self._get_model()
            response = await asyncio.to_thread(
                model.generate_content,
                prompt,
                generation_config=self._generation_config(),
            )
            result = parse_analysis_response(_response_text(response))
        except AnalysisError:
            observability.gemini_api_calls_total.labels(status="error").inc()
            raise
        except Exception as e:
            observability.gemini_api_calls_total.labels(status="error").inc()
            logger.error(
                f"Gemini analysis failed: {e}",
                extra={"status": "analysis_failed", "details": {"error": str(e)}},
            )
            raise AnalysisError(str(e) or FALLBACK_ERROR_MESSAGE) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        observability.gemini_api_calls_total.labels(status="success").inc()
        observability.gemini_api_latency_ms.observe(latency_ms)
        log_analysis_complete(logger, len(result.anomalies), latency_ms)
        return result
