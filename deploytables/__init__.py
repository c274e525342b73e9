"""
deploytables: revision manifests for deployments, stored in Azure Table Storage.
"""
__version__ = "1.0.0"
