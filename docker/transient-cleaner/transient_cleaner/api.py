from __future__ import annotations

import hmac
import logging

from flask import Blueprint, jsonify, request

from .errors import CleanupError, InvalidToken, StoreUnavailable, Unauthorized
from .scheduler import CleanupScheduler
from .settings import save_settings
from .state import MAX_INTERVAL_DAYS
from .tokens import NonceManager


LOGGER = logging.getLogger("transient_cleaner")

ADMIN_KEY_HEADER = "X-Cleaner-Key"
NONCE_HEADER = "X-Cleaner-Nonce"


def _check_admin_key(admin_key: str) -> None:
    supplied = str(request.headers.get(ADMIN_KEY_HEADER) or "")
    if not admin_key or not supplied or not hmac.compare_digest(supplied, admin_key):
        raise Unauthorized("You do not have permission to perform this action.")


def _request_payload() -> dict:
    if request.is_json:
        payload = request.get_json(silent=True) or {}
        return payload if isinstance(payload, dict) else {}
    return request.form.to_dict()


def _request_nonce(payload: dict) -> str:
    return str(payload.get("nonce") or request.headers.get(NONCE_HEADER) or "")


def _error_response(exc: CleanupError, status: int) -> tuple:
    return jsonify({"success": False, "data": {"message": str(exc), "error": exc.kind}}), status


def create_api_blueprint(*, scheduler: CleanupScheduler, nonces: NonceManager, admin_key: str) -> Blueprint:
    blueprint = Blueprint("transient_cleaner_api", __name__)
    engine = scheduler.engine

    @blueprint.get("/nonce")
    def issue_nonce() -> tuple:
        try:
            _check_admin_key(admin_key)
        except Unauthorized as exc:
            return _error_response(exc, 403)
        return jsonify({"nonce": nonces.issue()}), 200

    @blueprint.post("/cleanup")
    def manual_cleanup() -> tuple:
        payload = _request_payload()
        try:
            nonces.consume(_request_nonce(payload))
            _check_admin_key(admin_key)
        except (InvalidToken, Unauthorized) as exc:
            LOGGER.warning("[CLEANER]: Manual cleanup rejected: %s", exc)
            return _error_response(exc, 403)

        response = scheduler.trigger_manual()
        if response.success:
            status = 200
        elif response.error_kind == "busy":
            status = 409
        else:
            status = 500
        return jsonify(response.to_payload()), status

    @blueprint.get("/settings")
    def read_settings() -> tuple:
        try:
            _check_admin_key(admin_key)
        except Unauthorized as exc:
            return _error_response(exc, 403)
        try:
            state = engine.reload()
        except Exception:
            LOGGER.warning("[CLEANER]: Failed to read settings", exc_info=True)
            return _error_response(StoreUnavailable("Failed to read settings."), 500)
        return (
            jsonify(
                {
                    "interval": state.interval_days,
                    "logging_enabled": state.logging_enabled,
                    "interval_min": 1,
                    "interval_max": MAX_INTERVAL_DAYS,
                }
            ),
            200,
        )

    @blueprint.post("/settings")
    def write_settings() -> tuple:
        try:
            _check_admin_key(admin_key)
        except Unauthorized as exc:
            return _error_response(exc, 403)

        result = save_settings(engine, _request_payload(), checkbox=not request.is_json)
        return (
            jsonify(
                {
                    "success": result.saved,
                    "data": {
                        "message": result.message,
                        "interval": result.state.interval_days,
                        "logging_enabled": result.state.logging_enabled,
                    },
                }
            ),
            200 if result.saved else 500,
        )

    @blueprint.get("/status")
    def status() -> tuple:
        state = engine.state
        return (
            jsonify(
                {
                    "last_run": scheduler.format_timestamp(state.last_run, empty_label="Never"),
                    "next_run": scheduler.format_timestamp(state.next_run, empty_label="Not scheduled"),
                    "interval": state.interval_days,
                    "logging_enabled": state.logging_enabled,
                    "dependency_active": engine.dependency_active(),
                    "cleanup_running": engine.is_busy,
                }
            ),
            200,
        )

    @blueprint.get("/health")
    def health() -> tuple:
        return (
            jsonify(
                {
                    "status": "ok",
                    "scheduler_running": scheduler.is_running,
                }
            ),
            200,
        )

    return blueprint
