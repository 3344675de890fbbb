"""Error taxonomy for the governed chat pipeline."""


class GovernedChatError(Exception):
    """Base class for every failure raised by the chat pipeline."""


class AuthError(GovernedChatError):
    """Missing or malformed bearer token; raised before any external call."""


class TokenAcquisitionError(GovernedChatError):
    """The identity provider did not return a delegated or application token."""


class PolicyScopeError(GovernedChatError):
    """The protection scope response did not have the expected shape."""


class PolicyEvaluationError(GovernedChatError):
    """A content evaluation call failed; inline gating fails closed."""


class LabelLookupError(GovernedChatError):
    """Label metadata could not be fetched for one retrieved document."""

    def __init__(self, label_id: str, message: str):
        super().__init__(f"label {label_id}: {message}")
        self.label_id = label_id


class DownstreamModelError(GovernedChatError):
    """The chat or embeddings model call failed."""
