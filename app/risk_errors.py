class RiskSeriesError(Exception):
    """Base class for everything the risk pipeline raises on purpose."""


class InsufficientHistoryError(RiskSeriesError):
    """No price points to build a series from."""


class MalformedInputError(RiskSeriesError):
    """Bad prices, missing columns or out-of-order timestamps."""


class ConfigInvariantError(RiskSeriesError):
    """Instrument configuration that the scorer cannot work with."""


class PriceFeedError(RiskSeriesError):
    """Upstream quote provider returned nothing usable."""
