"""
POSEMATCH Core Module

Configuration and worker pools.
"""
