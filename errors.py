"""Error kinds raised by the knowledge library core.

Each carries the HTTP status the JSON API answers with, so the routing
layer maps them with a single error handler.
"""


class KnowledgeError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class Unauthenticated(KnowledgeError):
    status_code = 401


class ValidationError(KnowledgeError):
    status_code = 400


class ConflictError(KnowledgeError):
    status_code = 409


class NotFoundError(KnowledgeError):
    status_code = 404


class InternalError(KnowledgeError):
    def __init__(self, message="Internal server error", retryable=False):
        super().__init__(message)
        self.retryable = retryable

    @property
    def status_code(self):
        return 503 if self.retryable else 500
