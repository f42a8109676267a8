"""Core components for the organization logging baseline.

This module contains the foundational components including AWS client
management and configuration handling.
"""
