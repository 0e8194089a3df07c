import logging
import os
from typing import Any, Optional

from azure.cosmos.aio import CosmosClient
from azure.identity.aio import DefaultAzureCredential
from quart import Blueprint, Quart, current_app, jsonify

from config import (
    CONFIG_AUTH_CLIENT,
    CONFIG_COSMOS_CLIENT,
    CONFIG_CREDENTIAL,
    CONFIG_DIGEST_DELIVERY,
)
from core.authentication import AuthenticationHelper
from ideas import categories_bp, digest_bp, ideas_bp, teams_bp, votes_bp

bp = Blueprint("routes", __name__)


@bp.route("/healthz", methods=["GET"])
async def healthz():
    return jsonify({"status": "ok"})


@bp.before_app_serving
async def setup_clients():
    AUTH_ENABLED = os.getenv("AUTH_ENABLED", "").lower() == "true"
    AUTH_TENANT_ID = os.getenv("AUTH_TENANT_ID")
    AUTH_CLIENT_ID = os.getenv("AUTH_CLIENT_ID")
    AUTH_SECRET_KEY = os.getenv("AUTH_SECRET_KEY")
    AZURE_COSMOS_ENDPOINT = os.getenv("AZURE_COSMOS_ENDPOINT")
    AZURE_COSMOS_KEY = os.getenv("AZURE_COSMOS_KEY")

    current_app.config[CONFIG_AUTH_CLIENT] = AuthenticationHelper(
        enabled=AUTH_ENABLED,
        secret_key=AUTH_SECRET_KEY,
        tenant_id=AUTH_TENANT_ID,
        client_id=AUTH_CLIENT_ID,
    )
    if not AUTH_ENABLED:
        current_app.logger.warning("AUTH_ENABLED is not true, requests run as the anonymous user")

    azure_credential = DefaultAzureCredential(exclude_shared_token_cache_credential=True)
    current_app.config[CONFIG_CREDENTIAL] = azure_credential

    if AZURE_COSMOS_ENDPOINT:
        current_app.logger.info(f"Connecting to Cosmos DB at {AZURE_COSMOS_ENDPOINT}")
        cosmos_credential: Any = AZURE_COSMOS_KEY or azure_credential
        current_app.config[CONFIG_COSMOS_CLIENT] = CosmosClient(
            url=AZURE_COSMOS_ENDPOINT, credential=cosmos_credential
        )
    else:
        current_app.logger.warning("AZURE_COSMOS_ENDPOINT is not set, storage is unavailable")


@bp.after_app_serving
async def close_clients():
    cosmos_client: Optional[CosmosClient] = current_app.config.get(CONFIG_COSMOS_CLIENT)
    if cosmos_client:
        await cosmos_client.close()

    azure_credential = current_app.config.get(CONFIG_CREDENTIAL)
    if azure_credential:
        await azure_credential.close()


def create_app(digest_delivery=None) -> Quart:
    """
    Build the Quart application.

    Args:
        digest_delivery: Async callable that sends a ``TeamDigest`` to its
            team channel. Digests are only logged when omitted.
    """
    app = Quart(__name__)
    app.config[CONFIG_DIGEST_DELIVERY] = digest_delivery

    # The client setup blueprint must be registered first so its
    # before_app_serving hook runs before the feature modules'.
    app.register_blueprint(bp)
    app.register_blueprint(ideas_bp)
    app.register_blueprint(votes_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(teams_bp)
    app.register_blueprint(digest_bp)

    # Level should be one of https://docs.python.org/3/library/logging.html#logging-levels
    default_level = "INFO"
    if os.getenv("WEBSITE_HOSTNAME"):  # In production, don't log as heavily
        default_level = "WARNING"
    logging.basicConfig(
        level=os.getenv("APP_LOG_LEVEL", default_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    return app
