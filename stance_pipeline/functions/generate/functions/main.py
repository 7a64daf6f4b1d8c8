"""Cloud Function entry point for the generate stage."""

import os

import flask
import functions_framework

from stance_pipeline.functions.generate.core import build_generate_logic
from stance_pipeline.shared.runtime import GENERATE, StageRuntime
from stance_pipeline.shared.utils.env import load_env
from stance_pipeline.shared.utils.logging import setup_logging

load_env()
setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))

# Without OPENAI_API_KEY the factory raises and the runtime answers with
# the no-op generate result.
runtime = StageRuntime(GENERATE, build_generate_logic)


@functions_framework.http
def generate_handler(request: flask.Request) -> flask.Response:
    """Draft stance questions for pending topics."""
    return runtime.flask_handler(request)
