"""Local development server for the three pipeline stages."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from flask import Flask, jsonify, request

# Ensure project root is on sys.path
project_root = Path(__file__).resolve().parents[2]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from stance_pipeline.functions.cluster.functions.main import cluster_handler
from stance_pipeline.functions.generate.functions.main import generate_handler
from stance_pipeline.functions.ingest.functions.main import ingest_handler

app = Flask(__name__)


@app.route("/ingest", methods=["POST", "GET", "OPTIONS"])
def ingest():
    return ingest_handler(request)


@app.route("/cluster", methods=["POST", "GET", "OPTIONS"])
def cluster():
    return cluster_handler(request)


@app.route("/generate", methods=["POST", "GET", "OPTIONS"])
def generate():
    return generate_handler(request)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({"status": "healthy", "stages": ["ingest", "cluster", "generate"]})


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    print(f"Starting local pipeline server on http://localhost:{port}")
    print(
        "Test with: curl -X POST http://localhost:{port}/cluster -H \"x-cron-secret: $CRON_SECRET\"".replace(
            "{port}", str(port)
        )
    )
    print("")
    app.run(host="0.0.0.0", port=port, debug=True)
