# Overview: Converts Result values into JSON responses for the blueprints.

from flask import jsonify

from ..errors import ErrorKind
from ..result import Result

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE_IDENTIFIER: 409,
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.INVALID_STATE_TRANSITION: 409,
}


def respond(result: Result, serialize=None, success_status: int = 200):
    if result.ok:
        return jsonify(result.to_dict(serialize)), success_status
    return jsonify(result.to_dict()), STATUS_BY_KIND.get(result.error_kind, 400)


def internal_error():
    return jsonify({
        "ok": False,
        "error": {"kind": "internal_error", "message": "Internal server error", "details": {}},
    }), 500
