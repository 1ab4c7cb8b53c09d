from __future__ import annotations

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from pymongo.errors import PyMongoError

from results import config
from results.config import ConfigError
from results.db import ping
from results.routes import activity_bp, errors_bp, lookups_bp, reports_bp

app = Flask(__name__)
app.json.sort_keys = False

CORS(app, origins=config.get_cors_origins())

app.register_blueprint(lookups_bp)
app.register_blueprint(reports_bp)
app.register_blueprint(errors_bp)
app.register_blueprint(activity_bp)

logger = logging.getLogger(__name__)


@app.before_request
def log_request():
    logger.info("%s %s", request.method, request.full_path.rstrip("?"))


@app.get("/api/health")
def health():
    try:
        ping()
        return jsonify({"status": "ok", "message": "Database connected"})
    except ConfigError as exc:
        logger.exception("Missing configuration for MongoDB")
        return jsonify({"status": "error", "message": str(exc)}), 500
    except PyMongoError:
        logger.exception("Health check failed due to MongoDB error")
        return jsonify({"status": "error", "message": "Database unavailable"}), 503


@app.route("/")
def root():
    return "Student Analysis API is running"


if __name__ == "__main__":
    logging.basicConfig(
        level=config.get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.run(debug=True)
