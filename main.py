"""Deployment wrapper for the ingest, cluster and generate Cloud Functions.

Deploy each function with its handler as the entry point, for example
``--entry-point=cluster_handler``.
"""

from __future__ import annotations

import sys
from pathlib import Path

import flask

project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from stance_pipeline.functions.cluster.functions.main import runtime as cluster_runtime
from stance_pipeline.functions.generate.functions.main import runtime as generate_runtime
from stance_pipeline.functions.ingest.functions.main import runtime as ingest_runtime


def ingest_handler(request: flask.Request) -> flask.Response:
    return ingest_runtime.flask_handler(request)


def cluster_handler(request: flask.Request) -> flask.Response:
    return cluster_runtime.flask_handler(request)


def generate_handler(request: flask.Request) -> flask.Response:
    return generate_runtime.flask_handler(request)
