"""Executor module for the krr pod patcher.

This module applies recommendations to running pods:
- Resource quantity formatting and patch payload generation
- kubectl patch execution with timeouts and mock mode
- Sequential batch apply with per-item failure reporting
"""
