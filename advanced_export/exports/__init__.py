"""
Export Module

Threshold-based routing between synchronous downloads and background export jobs,
with chunked streaming queries for memory efficiency.
"""
