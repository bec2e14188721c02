from typing import Any, List, Optional


class AccessError(Exception):
    """Base class for request-local failures of the segment gate."""


class SegmentNotFound(AccessError):
    def __init__(self, segment_id: str):
        super().__init__(f"Segment {segment_id} not found")
        self.segment_id = segment_id


class ChallengeRequired(AccessError):
    """Programmatic caller, unpaid segment, no proof attached."""

    def __init__(self, segment_id: str):
        super().__init__(f"Payment required for segment {segment_id}")
        self.segment_id = segment_id


class PaymentPageRequired(AccessError):
    """Interactive caller without a proof: hand them the paywall page."""

    def __init__(self, segment_id: str, requirements: List[Any]):
        super().__init__(f"Payment page required for segment {segment_id}")
        self.segment_id = segment_id
        self.requirements = requirements


class VerificationFailed(AccessError):
    """The facilitator rejected the proof (invalid, expired, unsettled)."""

    def __init__(self, reason: str, requirements: Optional[List[Any]] = None):
        super().__init__(reason)
        self.reason = reason
        self.requirements = requirements or []


class VerifierUnavailable(AccessError):
    """The facilitator could not be reached or did not answer in time."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
