"""Bundled exercise content documents."""
