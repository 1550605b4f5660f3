"""matchday: adaptive live-match polling for tracked football teams."""

__version__ = "0.1.0"
