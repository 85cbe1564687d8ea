# fantasy_live/errors.py


class EngineError(Exception):
    """Base class for errors raised inside the ingestion/settlement engine."""


class ProviderError(EngineError):
    """Provider fetch failed after retries, or the provider reported an error."""


class PayoutError(EngineError):
    """A single winner payout attempt did not complete."""


class PayoutVerificationError(PayoutError):
    """The payout committed but the transaction could not be read back."""
