"""
PayMo Fraud Alert Backend
=========================
A Flask application that accepts a historical batch of payments and a
stream of new payments (PayMo CSV), builds an undirected trust network with
NetworkX from the batch, and grades each streamed payment by the degree of
separation between payer and payee:

  • distance 1  → the users have paid each other before
  • distance 2  → friend of a friend
  • distance ≤4 → within the extended network
  • otherwise   → unverified at every tier

Every streamed payment is added to the network once graded, so later
payments in the same stream see a denser graph. Each upload gets its own
network; nothing is shared between requests.
"""

import io
import time
import json
import logging

from flask import Flask, request, jsonify, Response
from flask_cors import CORS

import config
from ingest import (
    PaymentFileError,
    build_network,
    process_stream,
    read_payments,
    results_frame,
    to_dot,
)
from network import PaymentNetwork, Verdict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Flask application setup
# ---------------------------------------------------------------------------
app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.MAX_FILE_SIZE_BYTES
CORS(app, origins=config.CORS_ORIGINS)
# In-memory store for the last analysis
_last_result = None
_last_dot = None


@app.route("/", methods=["GET"])
def home():
    return jsonify({
        "message": "PayMo Fraud Alert API is running",
        "endpoints": ["/ping", "/upload", "/download-json", "/network.dot"]
    })


# ===========================================================================
# ANALYSIS PIPELINE
# ===========================================================================

def run_analysis(batch_file, stream_file) -> tuple[dict, str]:
    """
    Build the network from the batch file, grade the stream file, and
    return (result JSON, Graphviz DOT of the final network).

    Raises PaymentFileError if either file is unreadable.
    """
    start = time.time()

    network = PaymentNetwork.from_config()
    batch = read_payments(batch_file)
    stream = read_payments(stream_file)

    build_network(network, batch)
    results = process_stream(network, stream)

    frame = results_frame(results, network.thresholds)
    trusted_per_tier = {
        str(t): int((frame[f"verdict_{t}"] == Verdict.TRUSTED.value).sum())
        for t in network.thresholds
    }

    stats = network.stats()
    elapsed = round(time.time() - start, 3)

    result = {
        "thresholds": list(network.thresholds),
        "verdicts": [r.to_dict() for r in results],
        "summary": {
            "batch_records": len(batch),
            "stream_records": len(stream),
            "rejected_records": {
                "batch": len(batch.attrs["rejected_lines"]),
                "stream": len(stream.attrs["rejected_lines"]),
            },
            "total_users": stats["users"],
            "total_relationships": stats["relationships"],
            "existing_links": stats["existing_links"],
            "unreachable": stats["unreachable"],
            "trusted_per_tier": trusted_per_tier,
            "processing_time_seconds": elapsed,
        },
    }
    logger.info(
        "Graded %d stream payments against %d batch payments in %.3fs",
        len(stream), len(batch), elapsed,
    )
    return result, to_dot(network)


# ===========================================================================
# FLASK ENDPOINTS
# ===========================================================================

@app.errorhandler(413)
def too_large(e):
    """Oversized uploads get the same JSON error shape as every other failure."""
    limit_mb = app.config["MAX_CONTENT_LENGTH"] / (1024 * 1024)
    return jsonify({"error": f"File exceeds {limit_mb:g} MB"}), 413


@app.route("/ping", methods=["GET"])
def ping():
    """Health-check / keep-alive endpoint."""
    return jsonify({"status": "alive"})


def _csv_upload(field: str):
    """Return (file, error_response) for one multipart CSV field."""
    if field not in request.files:
        return None, (jsonify({"error": f"No '{field}' file part in request"}), 400)
    file = request.files[field]
    if file.filename == "":
        return None, (jsonify({"error": f"No '{field}' file selected"}), 400)
    if not file.filename.lower().endswith(".csv"):
        return None, (jsonify({"error": "Only CSV files are accepted"}), 400)
    return file, None


@app.route("/upload", methods=["POST"])
def upload():
    """
    Accept two CSV files via multipart/form-data: ``batch`` and ``stream``.

    Expected CSV layout (header line first):
      time, id1, id2, amount, message

    Returns the per-payment verdicts and a summary.
    """
    global _last_result, _last_dot

    batch_file, error = _csv_upload("batch")
    if error:
        return error
    stream_file, error = _csv_upload("stream")
    if error:
        return error

    try:
        batch = io.StringIO(batch_file.stream.read().decode("utf-8"))
        stream = io.StringIO(stream_file.stream.read().decode("utf-8"))
        result, dot = run_analysis(batch, stream)
    except (UnicodeDecodeError, PaymentFileError) as e:
        return jsonify({"error": f"Failed to parse CSV: {e}"}), 400

    _last_result = result
    _last_dot = dot
    return jsonify(result)


@app.route("/download-json", methods=["GET"])
def download_json():
    """Return the last analysis result as a downloadable JSON file."""
    if _last_result is None:
        return jsonify({"error": "No analysis has been run yet. Upload the CSVs first."}), 404

    return Response(
        json.dumps(_last_result, indent=2),
        mimetype="application/json",
        headers={"Content-Disposition": "attachment; filename=fraud_alert_result.json"},
    )


@app.route("/network.dot", methods=["GET"])
def network_dot():
    """Return the network built by the last analysis in Graphviz DOT."""
    if _last_dot is None:
        return jsonify({"error": "No analysis has been run yet. Upload the CSVs first."}), 404

    return Response(
        _last_dot,
        mimetype="text/vnd.graphviz",
        headers={"Content-Disposition": "attachment; filename=paymo-network.dot"},
    )


# ===========================================================================
# ENTRY POINT
# ===========================================================================

if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print(f"PayMo Fraud Alert API running on http://127.0.0.1:{config.PORT}")
    app.run(debug=True, host=config.HOST, port=config.PORT)
