"""
Core modules for Usage Telemetry.

This package contains the pure computations: source identity
normalization, event collection, status bucketing, key statistics,
rates, pricing and time series.
"""
