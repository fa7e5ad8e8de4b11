"""next-up: decides what plays after a video ends, and whether the viewer may play it."""

__version__ = "0.1.0"
