"""Cloud Function entry point for the ingest stage."""

import os

import flask
import functions_framework

from stance_pipeline.functions.ingest.core import IngestLogic
from stance_pipeline.shared.runtime import INGEST, StageRuntime
from stance_pipeline.shared.utils.env import load_env
from stance_pipeline.shared.utils.logging import setup_logging

load_env()
setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))

runtime = StageRuntime(INGEST, IngestLogic.from_env)


@functions_framework.http
def ingest_handler(request: flask.Request) -> flask.Response:
    """Poll due sources and queue their new items."""
    return runtime.flask_handler(request)
