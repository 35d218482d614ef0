"""SnapForge: self-hosted image gallery hosting."""

__version__ = "0.1.0"
