from flask import jsonify


def api_success(data=None, message=None, status=200, meta=None):
    body = {"success": True, "data": data if data is not None else {}}
    if message:
        body["message"] = message
    if meta:
        body["meta"] = meta
    return jsonify(body), status


def api_error(code="error", message="", status=400, details=None):
    body = {"success": False, "message": message, "error": {"code": code, "message": message}}
    if details:
        body["error"]["details"] = details
    return jsonify(body), status
