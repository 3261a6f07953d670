from flask import Flask, request, jsonify

from takeout_merge.config import load_settings
from takeout_merge.errors import ConfigError
from takeout_merge.services.pipeline_runner import get_channels, start_pipeline_job
from takeout_merge.services.job_store import pipeline_jobs, now_ts
from takeout_merge.utils.paths import display_path

app = Flask(__name__)


def _job_or_error(job_id):
    if not job_id:
        return None, (jsonify({"error": "job id required"}), 400)
    job = pipeline_jobs.get(job_id)
    channels = get_channels(job_id)
    if not job or channels is None:
        return None, (jsonify({"error": "job not found"}), 404)
    return (job, channels), None


@app.route("/api/run_async", methods=["POST"])
def api_run_async():
    data = request.get_json(silent=True) or {}
    archive = data.get("archive")
    if not archive:
        return jsonify({"error": "archive required"}), 400
    try:
        settings = app.config.get("TAKEOUT_SETTINGS") or load_settings()
    except ConfigError as exc:
        return jsonify({"error": str(exc)}), 500
    job_id = start_pipeline_job(archive, settings=settings)
    return jsonify({"job": job_id})


@app.route("/api/status", methods=["GET"])
def api_status():
    found, error = _job_or_error(request.args.get("job"))
    if error:
        return error
    job, _channels = found

    response = dict(job)
    start = job.get("start_time")
    end = job.get("finished_time") or now_ts()
    response["elapsed_seconds"] = end - start if start else None

    total = job.get("total_pairs") or 0
    processed = job.get("processed_pairs") or 0
    response["percent"] = round(processed / total * 100, 2) if total else None
    if job.get("current_file"):
        response["current_file_display"] = display_path(job["current_file"])
    if job.get("working_dir"):
        response["working_dir_display"] = display_path(job["working_dir"])
    return jsonify(response)


@app.route("/api/next_event", methods=["GET"])
def api_next_event():
    found, error = _job_or_error(request.args.get("job"))
    if error:
        return error
    _job, channels = found
    event = channels.poll_event(timeout=0)
    return jsonify({"event": event.to_dict() if event else None})


@app.route("/api/acknowledge", methods=["POST"])
def api_acknowledge():
    data = request.get_json(silent=True) or {}
    found, error = _job_or_error(data.get("job"))
    if error:
        return error
    _job, channels = found
    try:
        channels.acknowledge(retry=bool(data.get("retry")))
    except RuntimeError as exc:
        return jsonify({"error": str(exc)}), 409
    return jsonify({"ok": True})


@app.route("/api/cancel", methods=["POST"])
def api_cancel():
    data = request.get_json(silent=True) or {}
    found, error = _job_or_error(data.get("job"))
    if error:
        return error
    _job, channels = found
    channels.cancel()
    return jsonify({"ok": True})


if __name__ == "__main__":
    app.config["TAKEOUT_SETTINGS"] = load_settings()
    app.run(host="127.0.0.1", port=5000, debug=True)
