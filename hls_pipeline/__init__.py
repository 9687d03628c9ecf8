"""HLS Conversion Service.

Downloads stored videos, converts them to adaptive-bitrate HLS with a
poster thumbnail and a scrub-preview sprite sheet, and uploads the result.

Modules:
    - core: Configuration, logging, metrics, storage backends
    - modules.transcoding: Conversion pipeline and its HTTP API
"""

__version__ = "0.1.0"
