from __future__ import annotations

__version__ = "0.1.0"
__author__ = "Mulch Contributors"
