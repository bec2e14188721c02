"""Session-aware x402 paywall for HLS video segments."""

__version__ = "0.1.0"
