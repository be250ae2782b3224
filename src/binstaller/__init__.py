"""binstaller: keep external tool binaries installed and current.

Resolves where a component's binary lives, asks the release source for the
newest published version, probes what is installed, and, with consent,
downloads a replacement without disturbing a working installation.
"""

__version__ = "0.3.0"
