"""
Test suite for anomaly detection.
"""

from unittest.mock import MagicMock

from filing_assistant.core.anomaly_detector import AnomalyDetector, deduplicate, to_anomaly
from filing_assistant.exceptions import LLMError
from filing_assistant.models.analysis import Anomaly


class TestToAnomaly:
    """Test suite for model record conversion."""

    def test_to_anomaly_should_keep_fields(self) -> None:
        anomaly = to_anomaly(
            {
                "company": "Adobe",
                "metric": "Deferred revenue",
                "period": "Q3 2024",
                "change": "-12%",
                "severity": "HIGH",
                "rationale": "Unusual decline",
            },
            "10-Q.pdf",
        )

        assert anomaly == Anomaly(
            metric="Deferred revenue",
            severity="high",
            company="Adobe",
            period="Q3 2024",
            change="-12%",
            rationale="Unusual decline",
            document="10-Q.pdf",
        )

    def test_to_anomaly_should_drop_records_without_metric(self) -> None:
        """Test records missing a metric are discarded."""
        assert to_anomaly({"company": "Adobe", "severity": "high"}, "a.pdf") is None
        assert to_anomaly({"metric": "   "}, "a.pdf") is None
        assert to_anomaly("not a record", "a.pdf") is None

    def test_to_anomaly_should_default_severity_to_low(self) -> None:
        """Test missing or unknown severities become low."""
        assert to_anomaly({"metric": "Inventory"}, "a.pdf").severity == "low"
        assert to_anomaly({"metric": "Inventory", "severity": "critical"}, "a.pdf").severity == "low"

    def test_to_dict_should_omit_missing_fields(self) -> None:
        assert to_anomaly({"metric": "Inventory"}, "a.pdf").to_dict() == {
            "metric": "Inventory",
            "severity": "low",
            "document": "a.pdf",
        }


class TestDeduplicate:
    """Test suite for anomaly de-duplication."""

    def test_deduplicate_should_ignore_case_and_keep_first(self) -> None:
        """Test duplicates differing only in case collapse to the first one."""
        first = Anomaly(metric="Revenue", company="Walmart", period="FY24", change="-5%", document="a.pdf")
        second = Anomaly(metric="revenue ", company="WALMART", period="fy24", change="-5%", document="b.pdf")
        other = Anomaly(metric="Revenue", company="Walmart", period="FY23", change="-5%", document="b.pdf")

        assert deduplicate([first, second, other]) == [first, other]

    def test_deduplicate_should_treat_missing_company_as_unknown(self) -> None:
        first = Anomaly(metric="Margin")
        second = Anomaly(metric="margin", company="?")

        assert deduplicate([first, second]) == [first]


class TestAnomalyDetector:
    """Test suite for AnomalyDetector.detect."""

    def test_detect_should_merge_and_deduplicate_across_documents(self, chunk_store, store_document) -> None:
        """Test anomalies from several documents are merged without duplicates."""
        store_document("a.pdf", ["text a"], [[1.0, 0.0]])
        store_document("b.pdf", ["text b"], [[1.0, 0.0]])
        chat = MagicMock()
        chat.complete.return_value = (
            '{"anomalies": [{"company": "Adobe", "metric": "Deferred revenue", "change": "-12%", '
            '"severity": "high"}, {"severity": "low"}]}'
        )

        anomalies = AnomalyDetector(chunk_store, chat).detect()

        assert len(anomalies) == 1
        assert anomalies[0].metric == "Deferred revenue"
        assert anomalies[0].severity == "high"
        assert chat.complete.call_count == 2

    def test_detect_should_skip_failed_documents(self, chunk_store, store_document) -> None:
        store_document("a.pdf", ["text a"], [[1.0, 0.0]])
        store_document("b.pdf", ["text b"], [[1.0, 0.0]])
        chat = MagicMock()
        chat.complete.side_effect = [LLMError("timeout"), '{"anomalies": [{"metric": "Debt"}]}']

        anomalies = AnomalyDetector(chunk_store, chat).detect()

        assert [a.metric for a in anomalies] == ["Debt"]

    def test_detect_should_return_empty_for_malformed_output(self, chunk_store, store_document) -> None:
        store_document("a.pdf", ["text a"], [[1.0, 0.0]])
        chat = MagicMock()
        chat.complete.return_value = '{"anomalies": "none"}'

        assert AnomalyDetector(chunk_store, chat).detect() == []
