"""shode: an execution runtime for simplified shell-script syntax trees."""

__version__ = "0.1.0"
