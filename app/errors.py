# app/errors.py
"""
Error kinds raised by the commerce services.

Each error carries an explicit ``ErrorKind`` and the HTTP status the API
layer answers with, so routes never have to parse error messages.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    DUPLICATE_EVENT = "duplicate_event"
    SIGNATURE_VERIFICATION_FAILED = "signature_verification_failed"
    OUT_OF_STOCK = "out_of_stock"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    ENTITLEMENT_DENIED = "entitlement_denied"
    NOT_COMPLETED = "not_completed"
    UPSTREAM_GATEWAY_FAILURE = "upstream_gateway_failure"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    FORBIDDEN = "forbidden"


STATUS_CODES = {
    ErrorKind.DUPLICATE_EVENT: 200,
    ErrorKind.SIGNATURE_VERIFICATION_FAILED: 400,
    ErrorKind.OUT_OF_STOCK: 409,
    ErrorKind.INVALID_STATE_TRANSITION: 409,
    ErrorKind.ENTITLEMENT_DENIED: 403,
    ErrorKind.NOT_COMPLETED: 400,
    ErrorKind.UPSTREAM_GATEWAY_FAILURE: 502,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.FORBIDDEN: 403,
}


class CommerceError(Exception):
    kind: ErrorKind = ErrorKind.BAD_REQUEST

    def __init__(self, detail: str, *, kind: Optional[ErrorKind] = None):
        super().__init__(detail)
        self.detail = detail
        if kind is not None:
            self.kind = kind

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_dict(self) -> dict:
        return {"error": self.detail, "code": self.kind.value}


class SignatureVerificationFailed(CommerceError):
    kind = ErrorKind.SIGNATURE_VERIFICATION_FAILED


class OutOfStock(CommerceError):
    kind = ErrorKind.OUT_OF_STOCK

    def __init__(self, course_id: int, purchase_id: Optional[int] = None):
        super().__init__(f"Course {course_id} is out of stock")
        self.course_id = course_id
        self.purchase_id = purchase_id


class InvalidStateTransition(CommerceError):
    kind = ErrorKind.INVALID_STATE_TRANSITION

    def __init__(self, from_status, to_status):
        super().__init__(
            f"Invalid subscription transition: {_value(from_status)} -> {_value(to_status)}"
        )
        self.from_status = from_status
        self.to_status = to_status


class EntitlementDenied(CommerceError):
    kind = ErrorKind.ENTITLEMENT_DENIED


class NotCompleted(CommerceError):
    kind = ErrorKind.NOT_COMPLETED


class UpstreamGatewayFailure(CommerceError):
    kind = ErrorKind.UPSTREAM_GATEWAY_FAILURE


class NotFound(CommerceError):
    kind = ErrorKind.NOT_FOUND


class Forbidden(CommerceError):
    kind = ErrorKind.FORBIDDEN


def _value(status):
    return getattr(status, "value", status)
