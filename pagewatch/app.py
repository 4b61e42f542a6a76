"""
HTTP API for pagewatch
Monitor registration, change checks, alert dispatch, site cloning and visual diffing
"""

from flask import Flask, jsonify, request

from pagewatch.alerts.models import WebhookEndpoint
from pagewatch.alerts.registry import EndpointRegistry
from pagewatch.core import logger
from pagewatch.detection.models import ChangeResult
from pagewatch.errors import (
    BaselineMissing,
    CaptureFailure,
    CloneFailure,
    FetchFailure,
    PageWatchError,
    ReferenceMissing,
)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")
    return body


def create_app(service, replicator=None, differ=None, registry: EndpointRegistry = None) -> Flask:
    """
    FLOW: Wires the monitor service, replication engine and visual differ behind JSON routes ->
    Maps the failure taxonomy onto HTTP status codes.
    """
    app = Flask(__name__)
    registry = registry or service.registry

    # ============================================================
    # ERROR MAPPING
    # ============================================================

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(BaselineMissing)
    def baseline_missing(e):
        return jsonify({"error": str(e), "targetId": e.target_id}), 404

    @app.errorhandler(FetchFailure)
    @app.errorhandler(CaptureFailure)
    def upstream_failure(e):
        return jsonify({"error": str(e), "url": e.url, "timedOut": e.timed_out}), 502

    @app.errorhandler(ReferenceMissing)
    def reference_missing(e):
        return jsonify({"error": str(e), "referencePath": e.path}), 404

    @app.errorhandler(CloneFailure)
    def clone_failure(e):
        body = {"error": str(e), "url": e.url}
        if e.bundle is not None:
            body["bundle"] = e.bundle.to_dict()
        return jsonify(body), 500

    @app.errorhandler(PageWatchError)
    def pagewatch_error(e):
        logger.error(f"[API] Unhandled pipeline error: {e}")
        return jsonify({"error": str(e)}), 500

    # ============================================================
    # MONITORS
    # ============================================================

    @app.route('/api/monitors', methods=['POST'])
    def register_monitor():
        target = service.register_monitor(_json_body())
        return jsonify(target.to_dict()), 201

    @app.route('/api/monitors', methods=['GET'])
    def list_monitors():
        return jsonify([t.to_dict() for t in service.list_monitors()])

    @app.route('/api/monitors/<target_id>', methods=['DELETE'])
    def unregister_monitor(target_id):
        if not service.unregister_monitor(target_id):
            return jsonify({"error": f"Unknown monitor {target_id}"}), 404
        return jsonify({"removed": target_id})

    @app.route('/api/monitors/<target_id>/check', methods=['POST'])
    def check_monitor(target_id):
        if request.args.get('notify') in ('1', 'true'):
            return jsonify(service.run_check(target_id).to_dict())
        return jsonify(service.check_for_changes(target_id).to_dict())

    @app.route('/api/monitors/<target_id>/dispatch', methods=['POST'])
    def dispatch(target_id):
        body = _json_body()
        body.setdefault("targetId", target_id)
        try:
            result = ChangeResult.from_dict(body)
        except KeyError as e:
            raise ValueError(f"change result is missing {e}") from e
        return jsonify(service.dispatch(target_id, result).to_dict())

    # ============================================================
    # WEBHOOKS
    # ============================================================

    @app.route('/api/webhooks', methods=['GET'])
    def list_webhooks():
        return jsonify([e.to_dict() for e in registry.all()])

    @app.route('/api/webhooks', methods=['POST'])
    def register_webhook():
        body = _json_body()
        if not body.get("id") or not body.get("url"):
            raise ValueError("webhook requires 'id' and 'url'")
        endpoint = WebhookEndpoint(endpoint_id=body["id"], url=body["url"], target_id=body.get("targetId"))
        registry.register(endpoint)
        return jsonify(endpoint.to_dict()), 201

    @app.route('/api/webhooks/<endpoint_id>', methods=['DELETE'])
    def unregister_webhook(endpoint_id):
        if registry.unregister(endpoint_id) is None:
            return jsonify({"error": f"Unknown webhook {endpoint_id}"}), 404
        return jsonify({"removed": endpoint_id})

    # ============================================================
    # REPLICATION / VISUAL
    # ============================================================

    @app.route('/api/clone', methods=['POST'])
    def clone():
        if replicator is None:
            return jsonify({"error": "replication is not enabled"}), 501
        url = _json_body().get("url")
        if not url:
            raise ValueError("'url' is required")
        return jsonify(replicator.clone(url).to_dict())

    @app.route('/api/visual-diff', methods=['POST'])
    def visual_diff():
        if differ is None:
            return jsonify({"error": "visual diffing is not enabled"}), 501
        body = _json_body()
        reference_url = body.get("referenceUrl")
        reference_path = body.get("referencePath")
        current_url = body.get("currentUrl")
        if not current_url or not (reference_url or reference_path):
            raise ValueError("'currentUrl' and one of 'referenceUrl' or 'referencePath' are required")
        if reference_path:
            return jsonify(differ.compare_to_reference(reference_path, current_url).to_dict())
        return jsonify(differ.compare(reference_url, current_url).to_dict())

    return app
