"""yvm — command-line version manager for the ylem compiler."""

from yvm_core import __version__
