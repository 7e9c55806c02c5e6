"""
Dialect-independent building blocks: match records, the top-K retention policy and the canonical output buffer.
"""
