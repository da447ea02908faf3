"""
RF Emitter Localization Core Package.

Estimates device position from sightings of WiFi access points and cell
towers, using a locally learned model of where each emitter has coverage.

Package structure:
- proto: Message schemas (observations, reference fixes, position fixes)
- localization: Coverage model, Kalman smoothing, fusion, outlier rejection
- storage: Emitter persistence contract, SQLite store, write-back cache
- domain: Collection cycle processing and the worker queue
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"
