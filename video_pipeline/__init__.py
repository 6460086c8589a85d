"""Two-stage video pipeline: acquisition and multi-format transcoding.

Stages hand work to each other only through a blob store and an event log.
"""

__version__ = "0.1.0"
