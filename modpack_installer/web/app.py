"""Flask application - routes for the modpack installer web UI."""

from dataclasses import asdict

from flask import Flask, Response, jsonify, request

from ..paths import AppPaths
from ..service import AlreadyRunningError, InstallerService
from ..state import InstallerMode
from .tasks import TaskManager


def _parse_mode(data: dict) -> InstallerMode | None:
    try:
        return InstallerMode(str(data.get("mode", "")).lower())
    except ValueError:
        return None


def create_app(paths: AppPaths, service: InstallerService | None = None) -> Flask:
    app = Flask(__name__)
    app.config["INSTALL_DIR"] = str(paths.install_dir)

    svc = service or InstallerService(paths)
    tasks = TaskManager()

    @app.route("/api/status")
    def api_status():
        result = svc.initialize_title()
        return jsonify({**asdict(result), "is_running": svc.is_running})

    @app.route("/api/mode", methods=["POST"])
    def api_select_mode():
        mode = _parse_mode(request.get_json(silent=True) or {})
        if mode is None:
            return jsonify({"error": "mode must be 'install' or 'update'"}), 400
        return jsonify(asdict(svc.select_mode(mode)))

    @app.route("/api/run", methods=["POST"])
    def api_run():
        mode = _parse_mode(request.get_json(silent=True) or {})
        if mode is None:
            return jsonify({"error": "mode must be 'install' or 'update'"}), 400
        # Claimed here, on the request thread, so a concurrent POST sees it.
        try:
            svc.claim()
        except AlreadyRunningError as e:
            return jsonify({"error": str(e)}), 409

        try:
            result = svc.select_mode(mode)
            if not result.is_accept:
                svc.release()
                return jsonify({"error": result.error}), 400
            task_id = tasks.start(
                mode.value, lambda on_event: svc.run_claimed(mode, on_event=on_event)
            )
        except Exception:
            svc.release()
            raise
        return jsonify({"task_id": task_id}), 202

    @app.route("/api/open-logs", methods=["POST"])
    def api_open_logs():
        svc.open_log_folder()
        return jsonify({"log_dir": str(paths.log_dir)})

    @app.route("/api/tasks/<task_id>")
    def api_task_status(task_id: str):
        run = tasks.get(task_id)
        if run is None:
            return jsonify({"error": "Task not found"}), 404
        return jsonify(run.snapshot())

    @app.route("/api/tasks/<task_id>/stream")
    def api_task_stream(task_id: str):
        return Response(
            tasks.stream_events(task_id),
            mimetype="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    return app
