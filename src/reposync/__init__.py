"""reposync — unattended two-way sync between a local workspace and a git remote."""

__version__ = "0.1.0"
