"""Shared pytest configuration: render figures off-screen."""

import os

os.environ.setdefault("MPLBACKEND", "Agg")
