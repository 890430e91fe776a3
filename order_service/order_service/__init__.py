"""Order service: coupon engine and transactional order pricing."""

__version__ = "0.1.0"
