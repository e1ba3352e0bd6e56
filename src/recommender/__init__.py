"""Recommender module for the krr pod patcher.

This module handles recommendations that have already been produced:
- Decoding recommendation records from JSON or YAML input
- Indexing them by owning workload
- Resolving a pod's workload and matching its recommendation
"""
