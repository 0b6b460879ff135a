"""forgeprep — tier-routed, wave-scheduled preparation of engineering tasks."""

from __future__ import annotations

__version__ = "0.1.0"
