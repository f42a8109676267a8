"""Placement and provisioning of organization logging resources.

This package decides, per (account, region) context, whether to apply
the account-level S3 public access block, create the per-account
access-log bucket, and create the organization-wide central log
bucket, then provisions each one idempotently.
"""
