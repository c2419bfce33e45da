"""Community feed generator: firehose ingestion and feed skeleton queries."""

__version__ = "1.0.0"
