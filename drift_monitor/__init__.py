"""
Terraform Drift Monitor

Runs a read-only ``terraform plan`` of a GitHub-hosted configuration
repository against its remote state and reports the pending changes as
metrics.
"""

__version__ = "1.3.0"
