#!/usr/bin/env python3
"""
KubeBlade - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Wires the modules together
3. Runs the controller manager beside a small status API

All business logic is in the modules, following black box principles.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from kubernetes.client.rest import ApiException

from kubeblade.config.provider import ConfigProvider, EnvConfigProvider
from kubeblade.logging_config import configure_logging, get_logging_config

# Import modules through their black box interfaces
from kubeblade.modules.api import ChaosBlade
from kubeblade.modules.channel import ExecChannel
from kubeblade.modules.config import get_config
from kubeblade.modules.controller import ControllerManager
from kubeblade.modules.dispatch import build_dispatcher
from kubeblade.modules.executor import ExecutionEngine
from kubeblade.modules.inventory import KubernetesInventory, load_cluster_config
from kubeblade.modules.reconciler import ChaosBladePredicate, Reconciler
from kubeblade.modules.storage import ChaosBladeStore

# Get configuration
config = get_config()

configure_logging(config.get("log_level"))
logger = logging.getLogger(__name__)

# Configuration provider (centralized config access)
config_provider: ConfigProvider = EnvConfigProvider(config.get("config_file"))

# Initialized at startup
manager: Optional[ControllerManager] = None


def build_manager(provider: ConfigProvider) -> ControllerManager:
    """Build the full module graph against the configured cluster."""
    blade_config = provider.get_blade_config()
    execution_config = provider.get_execution_config()
    controller_config = provider.get_controller_config()

    load_cluster_config(controller_config.kube_context)

    inventory = KubernetesInventory(request_timeout=controller_config.request_timeout)
    channel = ExecChannel()
    engine = ExecutionEngine(inventory, channel, blade_config, execution_config)
    dispatcher = build_dispatcher(inventory, engine, blade_config, execution_config)
    store = ChaosBladeStore(request_timeout=controller_config.request_timeout)
    reconciler = Reconciler(store, dispatcher, requeue_delay=controller_config.requeue_delay)

    logger.info(
        f"Vendor {blade_config.vendor}: tool pods '{blade_config.tool_pod_selector}' "
        f"in {blade_config.operator_namespace}, scopes {', '.join(dispatcher.scopes)}"
    )
    return ControllerManager(store, reconciler, ChaosBladePredicate(), controller_config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - start and stop the controller manager.
    """
    global manager

    logger.info("Starting KubeBlade operator...")
    if config.get("start_manager"):
        manager = build_manager(config_provider)
        manager.start()
    else:
        logger.info("Controller manager disabled, serving the API only")

    yield

    logger.info("Shutting down KubeBlade operator...")
    if manager:
        manager.stop()
        manager = None
    logger.info("KubeBlade operator shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="KubeBlade",
    description="KubeBlade - ChaosBlade experiments for Kubernetes",
    version="1.0.0",
    lifespan=lifespan,
)


def _summary(blade: ChaosBlade) -> Dict[str, Any]:
    status = blade.status.model_dump(by_alias=True, exclude_none=True, mode="json")
    return {
        "name": blade.name,
        "phase": blade.phase.value or "Initial",
        "deleting": blade.deletion_requested,
        "experiments": len(blade.spec.experiments),
        "expStatuses": status.get("expStatuses", []),
    }


# Status Endpoints


@app.get("/chaosblades")
async def list_chaosblades():
    """
    List the experiments known to the controller.

    Returns:
        200: Phase and experiment statuses of every cached object
        503: Controller manager not running
    """
    if not manager:
        raise HTTPException(503, "Controller manager not running")
    return {"items": [_summary(blade) for blade in manager.snapshot()]}


@app.get("/chaosblades/{name}")
def get_chaosblade(name: str):
    """
    Get one experiment object, read from the API server rather than the cache.

    Returns:
        200: Phase and experiment statuses
        404: Unknown object
        502: Kubernetes API request failed
        503: Controller manager not running
    """
    if not manager:
        raise HTTPException(503, "Controller manager not running")
    blade = manager.store.get(name)
    if blade is None:
        raise HTTPException(404, f"chaosblade {name} not found")
    return _summary(blade)


# Health/Monitoring Endpoints


@app.get("/healthz")
async def healthz():
    """
    Minimal health check endpoint for Kubernetes readiness/liveness probes.

    Returns:
        200: Process is serving
    """
    return {"status": "ok"}


@app.get("/health")
async def health_check():
    """
    Controller health: manager threads alive and watch established.

    Returns:
        200: Healthy
        503: Manager stopped or not started
    """
    if not manager or not manager.running:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "manager": "stopped", "version": "1.0.0"},
        )
    return {
        "status": "healthy",
        "manager": "running",
        "watch": "established" if manager.watching else "reconnecting",
        "lastSync": manager.last_sync.isoformat() if manager.last_sync else None,
        "queued": len(manager.queue),
        "version": "1.0.0",
    }


# Error handlers


@app.exception_handler(ApiException)
async def kubernetes_error_handler(request, exc):
    """Handle Kubernetes API errors."""
    logger.error(f"Kubernetes API error: {exc.status} {exc.reason}")
    return JSONResponse(status_code=502, content={"error": "Kubernetes API request failed"})


def run() -> None:
    """Console entry point."""
    uvicorn.run(
        "kubeblade.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )


if __name__ == "__main__":
    run()
