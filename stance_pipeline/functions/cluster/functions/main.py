"""Cloud Function entry point for the cluster stage."""

import os

import flask
import functions_framework

from stance_pipeline.functions.cluster.core import ClusterLogic
from stance_pipeline.shared.runtime import CLUSTER, StageRuntime
from stance_pipeline.shared.utils.env import load_env
from stance_pipeline.shared.utils.logging import setup_logging

load_env()
setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))

runtime = StageRuntime(CLUSTER, ClusterLogic.from_env)


@functions_framework.http
def cluster_handler(request: flask.Request) -> flask.Response:
    """Group queued items into pending topics."""
    return runtime.flask_handler(request)
