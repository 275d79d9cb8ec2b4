"""
Grafana OTLP Metrics Exporter
==============================

Pushes LLM usage and answer-quality metrics to Grafana Cloud via OTLP.

Metrics exported:
- llm_tokens_total / llm_latency_ms: usage of chat and embedding calls
- qa_confidence / qa_response_time_ms: per answered question, tagged with
  the retrieval strategy that produced the answer
- routing_confidence: per routed ticket, tagged with the routing strategy
"""

import base64
import time
from typing import Optional, Dict, Any, List

import httpx

from src.config import settings
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class GrafanaOTLPExporter:
    """
    Export metrics to Grafana Cloud via the OTLP HTTP endpoint.

    Every export is fire-and-forget: failures are logged and reported as
    False, never raised into the request path.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None
    ):
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.debug("Grafana OTLP exporter not configured - metrics will not be exported")

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    @staticmethod
    def _attributes(values: Dict[str, Any]) -> List[dict]:
        return [
            {"key": key, "value": {"stringValue": str(value)}}
            for key, value in values.items()
        ]

    @staticmethod
    def _gauge(name: str, unit: str, value: int, timestamp_ns: int, attributes: List[dict]) -> dict:
        return {
            "name": name,
            "unit": unit,
            "gauge": {
                "dataPoints": [
                    {
                        "asInt": int(value),
                        "timeUnixNano": timestamp_ns,
                        "attributes": attributes
                    }
                ]
            }
        }

    async def _push(self, metrics: List[dict]) -> bool:
        payload = {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": self._attributes({
                            "service.name": settings.app_name,
                            "service.version": settings.app_version,
                            "deployment.environment": settings.environment,
                        })
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False

    async def export_llm_metrics(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str = "chat_completion"
    ) -> bool:
        """
        Export LLM usage metrics.

        Args:
            model: Model name (e.g., "gpt-4o")
            prompt_tokens: Number of prompt tokens used
            completion_tokens: Number of completion tokens generated
            latency_ms: Request latency in milliseconds
            operation: qa_answer, routing, reply_suggestions, embedding, ...

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            return False

        timestamp_ns = time.time_ns()
        attributes = self._attributes({
            "model": model,
            "operation": operation,
            "service": settings.app_name,
        })
        return await self._push([
            self._gauge("llm_tokens_total", "1", prompt_tokens + completion_tokens, timestamp_ns, attributes),
            self._gauge("llm_prompt_tokens", "1", prompt_tokens, timestamp_ns, attributes),
            self._gauge("llm_completion_tokens", "1", completion_tokens, timestamp_ns, attributes),
            self._gauge("llm_latency_ms", "ms", latency_ms, timestamp_ns, attributes),
        ])

    async def export_qa_metrics(
        self,
        confidence: int,
        response_time_ms: int,
        strategy: str,
        department: Optional[str] = None
    ) -> bool:
        """Export the outcome of one answered question."""
        if not self._enabled:
            return False

        timestamp_ns = time.time_ns()
        attributes = self._attributes({
            "strategy": strategy,
            "department": department or "general",
        })
        return await self._push([
            self._gauge("qa_confidence", "1", confidence, timestamp_ns, attributes),
            self._gauge("qa_response_time_ms", "ms", response_time_ms, timestamp_ns, attributes),
        ])

    async def export_routing_metrics(self, confidence: int, strategy: str, department: str) -> bool:
        """Export the outcome of one routed ticket."""
        if not self._enabled:
            return False

        attributes = self._attributes({"strategy": strategy, "department": department})
        return await self._push([
            self._gauge("routing_confidence", "1", confidence, time.time_ns(), attributes),
        ])


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> GrafanaOTLPExporter:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter


def init_grafana_exporter(
    host: str,
    api_key: str,
    instance_id: str
) -> GrafanaOTLPExporter:
    """Initialize Grafana exporter with credentials."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(
        host=host,
        api_key=api_key,
        instance_id=instance_id
    )
    return _grafana_exporter
