"""
Object storage, chunked transfer and background file-processing jobs.

Large uploads are staged in object storage as fixed-size chunks, then
reassembled, parsed and ingested by background jobs.
"""
