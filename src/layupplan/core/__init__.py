"""Core scheduling package.

Pure computation over in-memory snapshots: priority ranking and the
mold/date allocator. No I/O happens here.
"""
