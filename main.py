import os
import logging
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from briefing import handle_briefing
from gateway import DEFAULT_MODEL, handle_proxy, upstream_url

# ----------------------
# Defaults
# ----------------------
DEFAULT_FRONTEND_ORIGIN = "*"
DEFAULT_RATE_LIMIT = "10 per minute"
DEFAULT_PORT = 8080

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("oracoin-gateway")


def parse_timeout(value):
    """UPSTREAM_TIMEOUT in seconds; unset or blank leaves requests' default."""
    if value is None or not str(value).strip():
        return None
    return float(value)


# ----------------------
# App Setup
# ----------------------
def create_app(env=None) -> Flask:
    """Build the gateway app.

    ``env`` is the configuration mapping, ``os.environ`` unless given. The
    API key is looked up through it on every request, never cached.
    """
    env = os.environ if env is None else env
    get_config = env.get

    app = Flask(__name__)
    # upstream bodies are relayed with their key order intact
    app.json.sort_keys = False
    app.config["GEMINI_API_URL"] = upstream_url(get_config("GEMINI_MODEL") or DEFAULT_MODEL)
    app.config["UPSTREAM_TIMEOUT"] = parse_timeout(get_config("UPSTREAM_TIMEOUT"))

    origins = [o.strip() for o in (get_config("FRONTEND_ORIGIN") or DEFAULT_FRONTEND_ORIGIN).split(",")]
    CORS(app, origins=origins)

    rate_limit = get_config("RATE_LIMIT") or DEFAULT_RATE_LIMIT
    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        storage_uri="memory://",
    )

    # ----------------------
    # Endpoints
    # ----------------------
    @app.route("/", methods=["GET"])
    def health_check():
        return jsonify({"status": "gateway-running"}), 200

    @app.route("/api/gemini", methods=PROXY_METHODS)
    @limiter.limit(rate_limit)
    def gemini_proxy():
        return handle_proxy(
            request,
            get_config,
            url=app.config["GEMINI_API_URL"],
            timeout=app.config["UPSTREAM_TIMEOUT"],
        )

    @app.route("/api/briefing", methods=["POST"])
    @limiter.limit(rate_limit)
    def briefing():
        return handle_briefing(
            request,
            get_config,
            url=app.config["GEMINI_API_URL"],
            timeout=app.config["UPSTREAM_TIMEOUT"],
        )

    logger.info("Gateway forwarding to %s", app.config["GEMINI_API_URL"])
    return app


app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", DEFAULT_PORT)))
