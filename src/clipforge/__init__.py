"""clipforge: licensed source videos in, reviewed short-form clips out."""

__version__ = "0.4.0"
