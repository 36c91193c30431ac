"""pagesflow: build and publish a static single-page app to a hosting branch."""

from pagesflow.version import __version__

__all__ = ["__version__"]
