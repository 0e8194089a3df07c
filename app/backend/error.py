import logging

from quart import jsonify

ERROR_MESSAGE = """The app encountered an error processing your request.
If you are an administrator of the app, view the full error in the logs. See aka.ms/appservice-logs for more information.
Error type: {error_type}
"""


def error_dict(error: Exception) -> dict:
    # Vote failures carry the idea they concern; a failed rollback also
    # carries the state a reconciliation needs.
    if hasattr(error, "needs_reconciliation"):
        return {"error": str(error), "needsReconciliation": error.needs_reconciliation}
    if hasattr(error, "idea_id"):
        return {"error": str(error), "ideaId": error.idea_id}
    return {"error": ERROR_MESSAGE.format(error_type=type(error))}


def error_response(error: Exception, route: str, status_code: int = 500):
    logging.exception("Exception in %s: %s", route, error)
    return jsonify(error_dict(error)), status_code
