"""
ecorecicla.domain — Canonical data models and enumerations.

This package defines the source-of-truth types shared across every layer
of the service. Nothing in here should import from other ecorecicla
sub-packages (only stdlib).
"""
