"""
The photo index: a relational store of PhotoObject and PhotoDirectory records derived from the blob store.
"""
