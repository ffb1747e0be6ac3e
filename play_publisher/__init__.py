"""Publishes APK and AAB files to Google Play from CI pipelines."""

__version__ = "1.0.0"
