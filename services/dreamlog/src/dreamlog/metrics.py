"""Prometheus metrics for the Dream Log service."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

router = APIRouter(tags=["metrics"])

GENERATION_RUNS = Counter(
    "dreamlog_generation_runs_total",
    "Orchestration runs by mode and outcome",
    labelnames=("mode", "outcome"),
)

GENERATION_LATENCY = Histogram(
    "dreamlog_generation_latency_seconds",
    "Orchestration run latency in seconds",
    labelnames=("mode",),
    buckets=(0.5, 1, 2, 5, 10, 20, 40, 80, 160),
)

SCENE_IMAGES = Counter(
    "dreamlog_scene_images_total",
    "Scene illustrations by outcome",
    labelnames=("outcome",),
)

BUDGET_REJECTIONS = Counter(
    "dreamlog_budget_rejections_total",
    "Calls rejected by the rate budget tracker",
    labelnames=("capability",),
)

PERSISTENCE_OPERATIONS = Counter(
    "dreamlog_persistence_operations_total",
    "Persistence operations by backend, operation and outcome",
    labelnames=("backend", "operation", "outcome"),
)


@router.get("/metrics")
async def metrics_endpoint() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
