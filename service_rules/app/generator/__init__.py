"""
Bulk dummy-data generation.

Resets a partition and refills it with synthetic rules, streaming progress
to the caller while a bounded number of insert batches run concurrently.
"""
