"""
FastAPI application entry point.

Assembles the FastAPI app with the workflow router and a workflow
executor configured from the environment.
"""

import logging
import os
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trip_agents.graph.config import load_config_from_env
from trip_agents.graph.executor import create_trip_workflow
from trip_agents.graph.orchestrator_api import router as workflow_router
from trip_agents.shared.logging.config import setup_logging


# ============================================================================
# Logging configuration (single source of truth for all nodes)
# ============================================================================
LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)-35s | %(message)s"
)

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,  # Override any prior basicConfig calls
)

# Quiet noisy third-party loggers
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

# JSON lines for the trip_agents loggers (TRIP_LOG_FORMAT=json)
if os.environ.get("TRIP_LOG_FORMAT", "").lower() == "json":
    setup_logging(log_file=os.environ.get("TRIP_LOG_FILE"))


# Create FastAPI app
app = FastAPI(
    title="Trip Agents",
    description="Multi-agent trip itinerary workflow built with LangGraph",
    version="0.1.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.workflow = create_trip_workflow(load_config_from_env())
app.include_router(workflow_router)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    config = app.state.workflow.config
    return {
        "name": "Trip Agents",
        "version": "0.1.0",
        "workflow": {
            "endpoints": "/api/workflow",
            "max_retries": config.max_retries,
            "hitl_enabled": config.hitl.enabled,
            "llm_enabled": app.state.workflow.llm is not None,
        },
    }


@app.get("/health")
async def health():
    """Global health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
