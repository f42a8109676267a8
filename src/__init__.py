"""Organization Logging Baseline - Main Package.

This package decides and provisions the S3 logging resources each
account and region of an AWS Organization needs.
"""

__version__ = "1.0.0"
__author__ = "Organization Logging Baseline Team"
