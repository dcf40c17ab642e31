"""
Storage helpers: chunked local I/O and Azure Blob Storage access.
"""
